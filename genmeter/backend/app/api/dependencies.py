# backend/app/api/dependencies.py
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import uuid

from app.db.database import get_db
from app.db.models.user import User
from app.db.repositories.user_repository import UserRepository
from app.services.provider_client import ProviderClient


async def get_current_user(
    request: Request,
    x_user_id: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the caller from the X-User-ID header.

    Authentication happens upstream; this service only trusts the identity
    the gateway forwards.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )

    try:
        user_id = uuid.UUID(x_user_id)
    except (ValueError, AttributeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format",
        )

    user = await UserRepository(db).refresh_by_id(user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    request.state.user_id = user.id
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Allow only administrators"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return current_user


def get_provider_client() -> ProviderClient:
    return ProviderClient()


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
