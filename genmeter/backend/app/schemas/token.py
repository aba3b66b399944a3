# backend/app/schemas/token.py
from pydantic import BaseModel, ConfigDict, Field, UUID4
from typing import Optional
from datetime import datetime

from app.core.constants import LedgerEntryKind, PurchaseStatus


class TokenBalance(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token_balance: int
    total_tokens_purchased: int
    total_tokens_used: int
    free_tokens_granted: int


class TokenTransaction(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    kind: LedgerEntryKind
    amount: int
    recorded_amount: int
    balance_after: int
    generation_id: Optional[UUID4] = None
    purchase_id: Optional[UUID4] = None
    reason: Optional[str] = None
    created_at: datetime


class TokenGrant(BaseModel):
    user_id: UUID4
    tokens: int = Field(..., gt=0)
    reason: str = Field(default="Free tokens", max_length=255)


class TokenPurchaseCreate(BaseModel):
    amount_cents: int = Field(..., ge=0)
    tokens: int = Field(..., gt=0)
    package_name: str = Field(..., min_length=1, max_length=100)
    package_display_name: Optional[str] = None
    payment_method: Optional[str] = None


class TokenPurchaseComplete(BaseModel):
    payment_reference: Optional[str] = None


class TokenPurchaseFail(BaseModel):
    error: str = Field(..., min_length=1)


class TokenPurchase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    user_id: UUID4
    amount_cents: int
    tokens: int
    package_name: str
    package_display_name: Optional[str] = None
    status: PurchaseStatus
    transaction_id: str
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class ReconcileResult(BaseModel):
    user_id: UUID4
    token_balance: int
    ledger_balance: int
    consistent: bool
