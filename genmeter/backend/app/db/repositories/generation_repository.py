from typing import Optional, List, Dict
from uuid import UUID
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import GenerationStatus
from app.db.models.generation import Generation
from app.db.repositories.base import BaseRepository


class GenerationRepository(BaseRepository[Generation]):
    """Repository for Generation operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Generation, session)

    async def get_by_external_id(self, external_id: str) -> Optional[Generation]:
        """Get generation by compute provider ID"""
        result = await self.session.execute(
            select(Generation).where(Generation.external_id == external_id)
        )
        return result.scalar_one_or_none()

    async def get_by_user(
        self,
        user_id: UUID,
        status: Optional[GenerationStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Generation]:
        """Get generations for a user, newest first"""
        query = select(Generation).where(Generation.user_id == user_id)
        if status:
            query = query.where(Generation.status == GenerationStatus(status).value)

        result = await self.session.execute(
            query.order_by(Generation.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def get_recent(
        self,
        status: Optional[GenerationStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Generation]:
        """Get generations across all users, newest first"""
        query = select(Generation)
        if status:
            query = query.where(Generation.status == GenerationStatus(status).value)

        result = await self.session.execute(
            query.order_by(Generation.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def get_pending(self, limit: int = 10) -> List[Generation]:
        """Get pending generations, oldest first"""
        result = await self.session.execute(
            select(Generation)
            .where(Generation.status == GenerationStatus.PENDING.value)
            .order_by(Generation.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_status(self, user_id: UUID) -> Dict[str, int]:
        """Count a user's generations in each of the five states"""
        result = await self.session.execute(
            select(Generation.status, func.count(Generation.id))
            .where(Generation.user_id == user_id)
            .group_by(Generation.status)
        )
        counts = {status.value: 0 for status in GenerationStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def compare_and_set_status(
        self,
        generation_id: UUID,
        expected_status: GenerationStatus,
        values: dict,
    ) -> bool:
        """
        Write ``values`` only if the row is still in ``expected_status``.

        Returns False when a concurrent writer moved the record first.
        """
        result = await self.session.execute(
            update(Generation)
            .where(Generation.id == generation_id)
            .where(Generation.status == GenerationStatus(expected_status).value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
