# backend/app/api/v1/files.py
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from app.api.dependencies import client_ip, get_current_user
from app.core.constants import FileCategory, MAX_PAGE_SIZE
from app.db.database import get_db
from app.db.models.user import User
from app.schemas.file import FileAsset, FileAssetCreate
from app.services.file_service import FileService

router = APIRouter()


@router.post("", response_model=FileAsset, status_code=status.HTTP_201_CREATED)
async def record_upload(
    file_in: FileAssetCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Register an image that was uploaded to storage"""
    return await FileService(db).record_upload(
        current_user.id, file_in.model_dump(), ip_address=client_ip(request)
    )


@router.get("", response_model=List[FileAsset])
async def list_files(
    category: Optional[FileCategory] = None,
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await FileService(db).list_files(current_user.id, category=category, limit=limit)


@router.post("/{file_id}/download", response_model=FileAsset)
async def record_download(
    file_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await FileService(db).record_download(current_user.id, file_id, ip_address=client_ip(request))
