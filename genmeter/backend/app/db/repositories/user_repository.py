# backend/app/db/repositories/user_repository.py
from typing import Optional
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.user import User
from app.db.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email"""
        result = await self.session.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_balance(
        self,
        user_id: UUID,
        expected_balance: int,
        values: dict,
    ) -> bool:
        """
        Apply ``values`` only if the balance still equals ``expected_balance``.

        Returns False when another writer changed the balance in between.
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .where(User.token_balance == expected_balance)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
