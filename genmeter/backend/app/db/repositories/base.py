# backend/app/db/repositories/base.py
from typing import Any, Generic, TypeVar, Type, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common CRUD operations.

    Repositories flush but never commit; the calling service decides where a
    unit of work ends (see app.db.database.transaction).
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get(self, id: Any) -> Optional[ModelType]:
        """Get by ID"""
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def create(self, obj_in: dict) -> ModelType:
        """Create new record"""
        db_obj = self.model(**obj_in)
        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)
        return db_obj

    async def update(self, id: Any, obj_in: dict) -> Optional[ModelType]:
        """Update record"""
        await self.session.execute(
            update(self.model)
            .where(self.model.id == id)
            .values(**obj_in)
            .execution_options(synchronize_session=False)
        )
        return await self.refresh_by_id(id)

    async def refresh_by_id(self, id: Any) -> Optional[ModelType]:
        """Re-read a row, bypassing the identity map's cached attributes"""
        result = await self.session.execute(
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def delete(self, id: Any) -> bool:
        """Delete record"""
        result = await self.session.execute(
            delete(self.model)
            .where(self.model.id == id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
