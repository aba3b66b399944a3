# backend/app/api/v1/tokens.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from app.api.dependencies import get_current_user, require_admin
from app.core.constants import MAX_PAGE_SIZE, TOKEN_PURCHASES_PAGE_SIZE
from app.db.database import get_db, transaction
from app.db.models.user import User
from app.db.repositories.token_repository import TokenTransactionRepository
from app.schemas.token import (
    ReconcileResult,
    TokenBalance,
    TokenGrant,
    TokenPurchase,
    TokenPurchaseComplete,
    TokenPurchaseCreate,
    TokenPurchaseFail,
    TokenTransaction,
)
from app.services.purchase_service import TokenPurchaseService
from app.services.token_ledger import TokenLedger

router = APIRouter()


@router.get("/balance", response_model=TokenBalance)
async def get_balance(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/transactions", response_model=List[TokenTransaction])
async def list_transactions(
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's ledger rows, newest first"""
    return await TokenTransactionRepository(db).get_by_user(current_user.id, limit=limit)


@router.get("/reconcile", response_model=ReconcileResult)
async def reconcile_balance(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Check the stored balance against the ledger"""
    return await TokenLedger(db).reconcile(current_user.id)


@router.get("/purchases", response_model=List[TokenPurchase])
async def list_purchases(
    limit: int = Query(TOKEN_PURCHASES_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TokenPurchaseService(db).list_purchases(current_user.id, limit=limit)


@router.post("/purchases", response_model=TokenPurchase, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    purchase_in: TokenPurchaseCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open a pending purchase; the payment collaborator completes or fails it"""
    return await TokenPurchaseService(db).create_purchase(
        current_user.id,
        amount_cents=purchase_in.amount_cents,
        tokens=purchase_in.tokens,
        package_name=purchase_in.package_name,
        package_display_name=purchase_in.package_display_name,
        payment_method=purchase_in.payment_method,
    )


@router.post("/purchases/{purchase_id}/complete", response_model=TokenPurchase)
async def complete_purchase(
    purchase_id: UUID,
    complete_in: TokenPurchaseComplete,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await TokenPurchaseService(db).complete_purchase(
        purchase_id, payment_reference=complete_in.payment_reference
    )


@router.post("/purchases/{purchase_id}/fail", response_model=TokenPurchase)
async def fail_purchase(
    purchase_id: UUID,
    fail_in: TokenPurchaseFail,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await TokenPurchaseService(db).fail_purchase(purchase_id, fail_in.error)


@router.post("/grants", response_model=TokenBalance)
async def grant_tokens(
    grant_in: TokenGrant,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Give a user free tokens"""
    async with transaction(db):
        user = await TokenLedger(db).grant_free_tokens(grant_in.user_id, grant_in.tokens, grant_in.reason)
    return user
