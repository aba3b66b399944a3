# backend/app/db/models/user.py
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Uuid, CheckConstraint
import uuid
from app.db.base import BaseModel


class User(BaseModel):
    """Account record; the token ledger counters live here"""
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("token_balance >= 0", name="users_token_balance_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)

    # Profile
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(500), nullable=True)

    # Identity provider reference (auth is handled upstream)
    external_id = Column(String(255), nullable=True, index=True)
    provider = Column(String(50), nullable=True)  # google, github, etc.

    # Token ledger counters
    token_balance = Column(Integer, default=0, nullable=False)
    total_tokens_purchased = Column(Integer, default=0, nullable=False)
    total_tokens_used = Column(Integer, default=0, nullable=False)
    free_tokens_granted = Column(Integer, default=0, nullable=False)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    last_login = Column(DateTime, nullable=True)
