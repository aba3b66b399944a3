from sqlalchemy import Column, String, ForeignKey, DateTime, Integer, Text, Uuid, UniqueConstraint, CheckConstraint
import uuid
from app.db.base import Base, BaseModel, utcnow


class TokenTransaction(Base):
    """
    Append-only ledger row for every balance change.

    The unique (generation_id, kind) pair allows at most one debit per
    generation, so a replayed settlement cannot charge twice.
    """
    __tablename__ = "token_transactions"
    __table_args__ = (
        UniqueConstraint("generation_id", "kind", name="token_transactions_generation_kind_key"),
        CheckConstraint("kind IN ('debit', 'credit', 'grant')", name="token_transactions_kind_check"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)

    # Amount moved off/onto the balance, and the amount recorded as used
    amount = Column(Integer, nullable=False)
    recorded_amount = Column(Integer, nullable=False, default=0)
    balance_after = Column(Integer, nullable=False)

    generation_id = Column(Uuid, ForeignKey("generations.id", ondelete="SET NULL"), nullable=True, index=True)
    purchase_id = Column(Uuid, ForeignKey("token_purchases.id"), nullable=True)
    reason = Column(String(255), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class TokenPurchase(BaseModel):
    """Token package bought through the external payment collaborator"""
    __tablename__ = "token_purchases"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed', 'failed')", name="token_purchases_status_check"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    amount_cents = Column(Integer, nullable=False)
    tokens = Column(Integer, nullable=False)
    package_name = Column(String(100), nullable=False)
    package_display_name = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default="pending", index=True)
    transaction_id = Column(String(100), nullable=False, unique=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)
