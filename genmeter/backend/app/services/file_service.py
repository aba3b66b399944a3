# backend/app/services/file_service.py
from typing import List, Optional, Dict, Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import FileCategory, UsageAction
from app.core.exceptions import ForbiddenError, NotFoundError
from app.db.database import transaction
from app.db.models.file_asset import FileAsset
from app.db.repositories.file_repository import FileAssetRepository
from app.services.usage_service import UsageService


class FileService:
    """Metadata for images kept in external storage"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.files = FileAssetRepository(session)
        self.usage = UsageService(session)

    async def record_upload(
        self,
        user_id: UUID,
        data: Dict[str, Any],
        ip_address: Optional[str] = None,
    ) -> FileAsset:
        async with transaction(self.session):
            values = {**data, "user_id": user_id}
            values["category"] = FileCategory(values.get("category") or FileCategory.PRODUCT_IMAGE).value
            asset = await self.files.create(values)
            await self.usage.log_event(
                user_id,
                UsageAction.IMAGE_UPLOADED,
                {
                    "file_id": str(asset.id),
                    "category": asset.category,
                    "size_bytes": asset.size_bytes,
                    "content_type": asset.content_type,
                },
                ip_address=ip_address,
            )
        return asset

    async def record_download(
        self,
        user_id: UUID,
        file_id: UUID,
        ip_address: Optional[str] = None,
    ) -> FileAsset:
        async with transaction(self.session):
            asset = await self.files.get(file_id)
            if not asset:
                raise NotFoundError("File not found")
            if asset.user_id != user_id:
                raise ForbiddenError("File belongs to another user")
            await self.usage.log_event(
                user_id,
                UsageAction.IMAGE_DOWNLOADED,
                {"file_id": str(file_id), "generation_id": str(asset.generation_id) if asset.generation_id else None},
                ip_address=ip_address,
            )
        return asset

    async def list_files(
        self,
        user_id: UUID,
        category: Optional[FileCategory] = None,
        limit: int = 50,
    ) -> List[FileAsset]:
        return await self.files.get_by_user(
            user_id, category=FileCategory(category).value if category else None, limit=limit
        )
