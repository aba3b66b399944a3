# backend/app/schemas/user.py
from pydantic import BaseModel, ConfigDict, Field, UUID4, field_validator
from typing import Optional
from datetime import datetime


class UserBase(BaseModel):
    email: str = Field(..., max_length=255)
    full_name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("invalid email address")
        return v


class UserCreate(UserBase):
    external_id: Optional[str] = None
    provider: Optional[str] = None
    avatar_url: Optional[str] = None


class User(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    avatar_url: Optional[str] = None
    token_balance: int
    total_tokens_purchased: int
    total_tokens_used: int
    free_tokens_granted: int
    is_active: bool
    is_admin: bool
    last_login: Optional[datetime] = None
    created_at: datetime


class SessionEvent(BaseModel):
    session_id: Optional[str] = None
