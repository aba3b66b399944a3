from typing import List, Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.file_asset import FileAsset
from app.db.repositories.base import BaseRepository


class FileAssetRepository(BaseRepository[FileAsset]):
    """Repository for file metadata"""

    def __init__(self, session: AsyncSession):
        super().__init__(FileAsset, session)

    async def get_by_user(
        self,
        user_id: UUID,
        category: Optional[str] = None,
        limit: int = 50,
    ) -> List[FileAsset]:
        query = select(FileAsset).where(FileAsset.user_id == user_id)
        if category:
            query = query.where(FileAsset.category == category)

        result = await self.session.execute(
            query.order_by(FileAsset.uploaded_at.desc()).limit(limit)
        )
        return list(result.scalars().all())
