# backend/app/api/v1/generations.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID

from app.api.dependencies import get_current_user, get_provider_client, require_admin
from app.core.constants import (
    MAX_PAGE_SIZE,
    USER_GENERATIONS_PAGE_SIZE,
    GenerationStatus,
)
from app.db.database import get_db
from app.db.models.user import User
from app.schemas.generation import (
    Generation,
    GenerationCancel,
    GenerationCreate,
    GenerationCreated,
    GenerationList,
    GenerationStatusSummary,
    GenerationStatusUpdate,
)
from app.services.dispatcher import GenerationDispatcher
from app.services.generation_service import GenerationService
from app.services.provider_client import ProviderClient

router = APIRouter()


@router.post("", response_model=GenerationCreated, status_code=status.HTTP_201_CREATED)
async def create_generation(
    generation_in: GenerationCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a pending generation; tokens are charged when it completes"""
    generation = await GenerationService(db).create_generation(
        user_id=current_user.id,
        product_image_ref=generation_in.product_image_ref,
        model_image_ref=generation_in.model_image_ref,
        prompt=generation_in.prompt,
        parameters=generation_in.parameters.model_dump(),
    )
    return GenerationCreated(
        generation_id=generation.id,
        status=generation.status,
        estimated_cost=generation.token_cost,
        prompt=generation.prompt,
    )


@router.get("", response_model=GenerationList)
async def list_generations(
    status_filter: Optional[GenerationStatus] = Query(None, alias="status"),
    limit: int = Query(USER_GENERATIONS_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's generations, newest first"""
    items = await GenerationService(db).list_user_generations(
        current_user.id, status=status_filter, limit=limit, skip=offset
    )
    return GenerationList(
        items=[Generation.model_validate(item) for item in items], limit=limit, offset=offset
    )


@router.get("/summary", response_model=GenerationStatusSummary)
async def generation_summary(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GenerationService(db).get_status_summary(current_user.id)


@router.get("/{generation_id}", response_model=Generation)
async def get_generation(
    generation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GenerationService(db).get_generation(generation_id, current_user.id)


@router.patch("/{generation_id}/status", response_model=Generation)
async def update_generation_status(
    generation_id: UUID,
    update_in: GenerationStatusUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Operator override of a generation's status"""
    return await GenerationService(db).update_generation_status(
        generation_id,
        update_in.status,
        result_ref=update_in.result_ref,
        error=update_in.error,
        external_id=update_in.external_id,
    )


@router.post("/{generation_id}/retry", response_model=Generation)
async def retry_generation(
    generation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GenerationService(db).retry_generation(generation_id, current_user.id)


@router.post("/{generation_id}/cancel", response_model=Generation)
async def cancel_generation(
    generation_id: UUID,
    cancel_in: Optional[GenerationCancel] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider: ProviderClient = Depends(get_provider_client),
):
    return await GenerationDispatcher(db, provider).cancel_generation(
        generation_id, current_user.id, reason=cancel_in.reason if cancel_in else None
    )


@router.post("/{generation_id}/dispatch", response_model=Generation)
async def dispatch_generation(
    generation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider: ProviderClient = Depends(get_provider_client),
):
    """Submit a pending generation to the compute provider"""
    return await GenerationDispatcher(db, provider).dispatch_generation(generation_id, current_user.id)


@router.post("/{generation_id}/sync", response_model=Generation)
async def sync_generation(
    generation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider: ProviderClient = Depends(get_provider_client),
):
    """Poll the provider for a generation whose callback never arrived"""
    return await GenerationDispatcher(db, provider).sync_from_provider(generation_id, current_user.id)


@router.delete("/{generation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_generation(
    generation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await GenerationService(db).delete_generation(generation_id, current_user.id)
