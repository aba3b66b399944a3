# backend/app/api/v1/users.py
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.api.dependencies import client_ip, get_current_user
from app.db.database import get_db
from app.db.models.user import User as UserModel
from app.schemas.user import SessionEvent, User, UserCreate
from app.services.user_service import UserService

router = APIRouter()


@router.post("", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    """Provision an account with the signup token grant"""
    return await UserService(db).provision_user(
        email=user_in.email,
        full_name=user_in.full_name,
        external_id=user_in.external_id,
        provider=user_in.provider,
        avatar_url=user_in.avatar_url,
    )


@router.get("/me", response_model=User)
async def read_current_user(current_user: UserModel = Depends(get_current_user)):
    return current_user


@router.post("/me/login", response_model=User)
async def login(
    request: Request,
    body: Optional[SessionEvent] = None,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record a sign-in reported by the identity provider"""
    return await UserService(db).record_login(
        current_user.id, ip_address=client_ip(request), session_id=body.session_id if body else None
    )


@router.post("/me/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    body: Optional[SessionEvent] = None,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await UserService(db).record_logout(
        current_user.id, ip_address=client_ip(request), session_id=body.session_id if body else None
    )
