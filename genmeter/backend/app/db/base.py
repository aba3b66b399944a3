# backend/app/db/base.py
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime
from datetime import datetime, timezone

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime is UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(Base):
    """Abstract base model with common fields"""
    __abstract__ = True

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
