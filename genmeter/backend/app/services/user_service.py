# backend/app/services/user_service.py
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import UsageAction
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging import logger
from app.db.base import utcnow
from app.db.database import transaction
from app.db.models.user import User
from app.db.repositories.user_repository import UserRepository
from app.services.token_ledger import TokenLedger
from app.services.usage_service import UsageService


class UserService:
    """Account provisioning and session events; authentication happens upstream"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.usage = UsageService(session)
        self.ledger = TokenLedger(session, usage=self.usage)

    async def provision_user(
        self,
        email: str,
        full_name: Optional[str] = None,
        external_id: Optional[str] = None,
        provider: Optional[str] = None,
        avatar_url: Optional[str] = None,
        signup_tokens: Optional[int] = None,
    ) -> User:
        """Create an account and grant the signup tokens"""
        signup_tokens = settings.FREE_SIGNUP_TOKENS if signup_tokens is None else signup_tokens

        async with transaction(self.session):
            if await self.users.get_by_email(email):
                raise ValidationError("User with this email already exists")

            user = await self.users.create({
                "email": email,
                "full_name": full_name,
                "external_id": external_id,
                "provider": provider,
                "avatar_url": avatar_url,
                "token_balance": 0,
            })
            user_id = user.id
            if signup_tokens > 0:
                user = await self.ledger.grant_free_tokens(user_id, signup_tokens, "Signup bonus")

        logger.info(f"Provisioned user {user_id}", extra={"user_id": user_id})
        return user

    async def get_user(self, user_id: UUID) -> User:
        user = await self.users.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def record_login(
        self,
        user_id: UUID,
        ip_address: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> User:
        async with transaction(self.session):
            await self.get_user(user_id)
            user = await self.users.update(user_id, {"last_login": utcnow()})
            await self.usage.log_event(
                user_id, UsageAction.LOGIN, ip_address=ip_address, session_id=session_id
            )
        return user

    async def record_logout(
        self,
        user_id: UUID,
        ip_address: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> None:
        async with transaction(self.session):
            await self.get_user(user_id)
            await self.usage.log_event(
                user_id, UsageAction.LOGOUT, ip_address=ip_address, session_id=session_id
            )
