# backend/app/api/v1/admin.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.api.dependencies import get_provider_client, require_admin
from app.core.constants import (
    ADMIN_GENERATIONS_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PENDING_QUEUE_BATCH_SIZE,
    GenerationStatus,
)
from app.db.database import get_db
from app.db.models.user import User
from app.schemas.generation import Generation, GenerationList
from app.services.dispatcher import GenerationDispatcher
from app.services.generation_service import GenerationService
from app.services.provider_client import ProviderClient

router = APIRouter()


@router.get("/generations", response_model=GenerationList)
async def list_recent_generations(
    status_filter: Optional[GenerationStatus] = Query(None, alias="status"),
    limit: int = Query(ADMIN_GENERATIONS_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All users' generations, newest first"""
    items = await GenerationService(db).list_recent_generations(status=status_filter, limit=limit, skip=offset)
    return GenerationList(
        items=[Generation.model_validate(item) for item in items], limit=limit, offset=offset
    )


@router.get("/generations/pending", response_model=List[Generation])
async def list_pending_generations(
    limit: int = Query(PENDING_QUEUE_BATCH_SIZE, ge=1, le=MAX_PAGE_SIZE),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """The pending queue, oldest first"""
    return await GenerationService(db).get_pending_generations(limit)


@router.post("/generations/dispatch", response_model=List[Generation])
async def dispatch_pending_generations(
    limit: int = Query(PENDING_QUEUE_BATCH_SIZE, ge=1, le=MAX_PAGE_SIZE),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    provider: ProviderClient = Depends(get_provider_client),
):
    return await GenerationDispatcher(db, provider).dispatch_pending(limit)
