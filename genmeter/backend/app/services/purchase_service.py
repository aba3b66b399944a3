# backend/app/services/purchase_service.py
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import TOKEN_PURCHASES_PAGE_SIZE, PurchaseStatus, UsageAction
from app.core.exceptions import ForbiddenError, InvalidStatusTransitionError, NotFoundError
from app.core.logging import logger
from app.db.base import utcnow
from app.db.database import transaction
from app.db.models.token import TokenPurchase
from app.db.repositories.token_repository import TokenPurchaseRepository
from app.services.token_ledger import TokenLedger
from app.services.usage_service import UsageService


class TokenPurchaseService:
    """
    Token packages bought through the external payment collaborator.

    A purchase starts pending. Completing it credits the tokens exactly once;
    the status compare-and-set makes a second completion fail instead of
    crediting again.
    """

    def __init__(self, session: AsyncSession, ledger: Optional[TokenLedger] = None):
        self.session = session
        self.purchases = TokenPurchaseRepository(session)
        self.usage = UsageService(session)
        self.ledger = ledger or TokenLedger(session, usage=self.usage)

    async def create_purchase(
        self,
        user_id: UUID,
        amount_cents: int,
        tokens: int,
        package_name: str,
        package_display_name: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> TokenPurchase:
        async with transaction(self.session):
            await self.ledger.get_user(user_id)
            purchase = await self.purchases.create({
                "user_id": user_id,
                "amount_cents": amount_cents,
                "tokens": tokens,
                "package_name": package_name,
                "package_display_name": package_display_name,
                "payment_method": payment_method,
                "status": PurchaseStatus.PENDING.value,
                "transaction_id": f"txn_{uuid4().hex}",
            })

        logger.info(f"Created token purchase {purchase.id} ({tokens} tokens)", extra={"user_id": user_id})
        return purchase

    async def get_purchase(self, purchase_id: UUID, user_id: Optional[UUID] = None) -> TokenPurchase:
        purchase = await self.purchases.refresh_by_id(purchase_id)
        if not purchase:
            raise NotFoundError("Purchase not found")
        if user_id is not None and purchase.user_id != user_id:
            raise ForbiddenError("Purchase belongs to another user")
        return purchase

    async def complete_purchase(self, purchase_id: UUID, payment_reference: Optional[str] = None) -> TokenPurchase:
        """Mark a pending purchase paid and credit its tokens"""
        async with transaction(self.session):
            purchase = await self.get_purchase(purchase_id)
            applied = await self.purchases.compare_and_set_status(
                purchase_id,
                PurchaseStatus.PENDING.value,
                {
                    "status": PurchaseStatus.COMPLETED.value,
                    "payment_reference": payment_reference,
                    "completed_at": utcnow(),
                },
            )
            if not applied:
                raise InvalidStatusTransitionError(
                    purchase.status, PurchaseStatus.COMPLETED.value, entity="purchase"
                )

            await self.ledger.credit(
                purchase.user_id,
                purchase.tokens,
                purchase_id=purchase_id,
                reason=f"Purchase {purchase.package_name}",
            )
            await self.usage.log_event(
                purchase.user_id,
                UsageAction.TOKENS_PURCHASED,
                {
                    "purchase_id": str(purchase_id),
                    "tokens_received": purchase.tokens,
                    "amount_cents": purchase.amount_cents,
                    "package_name": purchase.package_name,
                },
            )
            purchase = await self.purchases.refresh_by_id(purchase_id)

        logger.info(f"Completed token purchase {purchase_id}", extra={"user_id": purchase.user_id})
        return purchase

    async def fail_purchase(self, purchase_id: UUID, error: str) -> TokenPurchase:
        async with transaction(self.session):
            purchase = await self.get_purchase(purchase_id)
            applied = await self.purchases.compare_and_set_status(
                purchase_id,
                PurchaseStatus.PENDING.value,
                {"status": PurchaseStatus.FAILED.value, "error": error},
            )
            if not applied:
                raise InvalidStatusTransitionError(
                    purchase.status, PurchaseStatus.FAILED.value, entity="purchase"
                )
            purchase = await self.purchases.refresh_by_id(purchase_id)

        logger.warning(f"Token purchase {purchase_id} failed: {error}", extra={"user_id": purchase.user_id})
        return purchase

    async def list_purchases(self, user_id: UUID, limit: int = TOKEN_PURCHASES_PAGE_SIZE) -> List[TokenPurchase]:
        return await self.purchases.get_by_user(user_id, limit=limit)
