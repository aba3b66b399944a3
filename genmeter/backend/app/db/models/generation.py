from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, CheckConstraint, Integer, Text, Uuid, Index
import uuid

from app.core.constants import MAX_RETRY_COUNT
from app.db.base import BaseModel


class Generation(BaseModel):
    """
    One asynchronous image-generation job.

    Status must be one of: pending, processing, completed, failed, cancelled.
    Transitions are validated in app.core.lifecycle before any write; the
    check constraints here only guard the value ranges.
    """
    __tablename__ = "generations"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="generations_status_check",
        ),
        CheckConstraint(
            f"retry_count >= 0 AND retry_count <= {MAX_RETRY_COUNT}",
            name="generations_retry_count_check",
        ),
        CheckConstraint("tokens_used >= 0", name="generations_tokens_used_check"),
        Index("ix_generations_user_created", "user_id", "created_at"),
        Index("ix_generations_user_status", "user_id", "status"),
        Index("ix_generations_created_at", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)

    # Inputs
    product_image_ref = Column(String(1000), nullable=False)
    model_image_ref = Column(String(1000), nullable=True)
    prompt = Column(Text, nullable=False)
    parameters = Column(JSON, nullable=False, default=dict)

    # Metering
    token_cost = Column(Integer, nullable=False, default=1)
    tokens_used = Column(Integer, nullable=False, default=0)
    retry_count = Column(Integer, nullable=False, default=0)

    # Outcome
    completed_at = Column(DateTime, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    result_ref = Column(String(1000), nullable=True)

    # Compute provider correlation id
    external_id = Column(String(255), nullable=True, unique=True, index=True)

    @property
    def model(self) -> str:
        return (self.parameters or {}).get("model", "")
