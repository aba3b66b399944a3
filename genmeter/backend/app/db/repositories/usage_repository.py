from datetime import datetime
from typing import Optional, List, Tuple
from uuid import UUID
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import UsageAction
from app.db.models.usage import UsageEvent
from app.db.repositories.base import BaseRepository


class UsageEventRepository(BaseRepository[UsageEvent]):
    """Append-only access to the usage event log"""

    def __init__(self, session: AsyncSession):
        super().__init__(UsageEvent, session)

    async def get_by_user(
        self,
        user_id: UUID,
        action: Optional[UsageAction] = None,
        limit: int = 50,
    ) -> List[UsageEvent]:
        """Get a user's events, newest first"""
        query = select(UsageEvent).where(UsageEvent.user_id == user_id)
        if action:
            query = query.where(UsageEvent.action == UsageAction(action).value)

        result = await self.session.execute(
            query.order_by(UsageEvent.timestamp.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_in_window(
        self,
        start: datetime,
        end: datetime,
        user_id: Optional[UUID] = None,
        actions: Optional[List[UsageAction]] = None,
    ) -> List[UsageEvent]:
        """Get events with start <= timestamp <= end"""
        query = (
            select(UsageEvent)
            .where(UsageEvent.timestamp >= start)
            .where(UsageEvent.timestamp <= end)
        )
        if user_id:
            query = query.where(UsageEvent.user_id == user_id)
        if actions:
            query = query.where(UsageEvent.action.in_([UsageAction(a).value for a in actions]))

        result = await self.session.execute(query.order_by(UsageEvent.timestamp.asc()))
        return list(result.scalars().all())

    async def count_by_action(
        self,
        start: datetime,
        end: datetime,
        user_id: Optional[UUID] = None,
    ) -> List[Tuple[str, int]]:
        """Count events per action inside the window"""
        query = (
            select(UsageEvent.action, func.count(UsageEvent.id))
            .where(UsageEvent.timestamp >= start)
            .where(UsageEvent.timestamp <= end)
        )
        if user_id:
            query = query.where(UsageEvent.user_id == user_id)

        result = await self.session.execute(query.group_by(UsageEvent.action))
        return [(action, count) for action, count in result.all()]

    async def last_timestamp(self, user_id: UUID, start: datetime, end: datetime) -> Optional[datetime]:
        """Most recent event time for a user inside the window"""
        result = await self.session.execute(
            select(func.max(UsageEvent.timestamp))
            .where(UsageEvent.user_id == user_id)
            .where(UsageEvent.timestamp >= start)
            .where(UsageEvent.timestamp <= end)
        )
        return result.scalar()

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Bulk delete events recorded before ``cutoff``"""
        result = await self.session.execute(
            delete(UsageEvent)
            .where(UsageEvent.timestamp < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
