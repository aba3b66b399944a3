# backend/app/db/models/usage.py
from sqlalchemy import Column, String, ForeignKey, DateTime, JSON, Uuid, Index
import uuid
from app.db.base import Base, utcnow


class UsageEvent(Base):
    """Append-only record of a discrete user or system action"""
    __tablename__ = "usage_events"
    __table_args__ = (
        Index("ix_usage_events_user_action", "user_id", "action"),
        Index("ix_usage_events_user_timestamp", "user_id", "timestamp"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    action = Column(String(50), nullable=False, index=True)  # generation_started, login, etc.
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Free-form context: generation_id, tokens_used, error_message, model, ...
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)

    # Request details
    ip_address = Column(String(64), nullable=True)
    session_id = Column(String(255), nullable=True)
