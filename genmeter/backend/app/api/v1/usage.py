# backend/app/api/v1/usage.py
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional, Tuple
from uuid import UUID

from app.api.dependencies import client_ip, get_current_user, require_admin
from app.core.config import settings
from app.core.constants import (
    MAX_PAGE_SIZE,
    POPULAR_MODELS_LIMIT,
    USAGE_HISTORY_PAGE_SIZE,
    UsageAction,
)
from app.db.base import utcnow
from app.db.database import get_db, transaction
from app.db.models.user import User
from app.schemas.usage import (
    CleanupResult,
    GenerationMetrics,
    PopularModel,
    UsageAnalytics,
    UsageEvent,
    UsageEventCreate,
    UserActivitySummary,
)
from app.services.usage_service import UsageService

router = APIRouter()


def _window(start_date: Optional[datetime], end_date: Optional[datetime]) -> Tuple[datetime, datetime]:
    """Default to the last 30 days"""
    end = end_date or utcnow()
    start = start_date or end - timedelta(days=30)
    return start, end


def _scope(current_user: User, user_id: Optional[UUID]) -> Optional[UUID]:
    """Admins may query any user or everyone; others only themselves"""
    if current_user.is_admin:
        return user_id
    return current_user.id


@router.post("/events", response_model=UsageEvent, status_code=status.HTTP_201_CREATED)
async def log_event(
    event_in: UsageEventCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Append a client-reported event for the caller"""
    async with transaction(db):
        event = await UsageService(db).log_event(
            current_user.id,
            event_in.action,
            event_in.metadata,
            ip_address=client_ip(request),
            session_id=event_in.session_id,
        )
    return event


@router.get("/history", response_model=List[UsageEvent])
async def usage_history(
    action: Optional[UsageAction] = None,
    limit: int = Query(USAGE_HISTORY_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UsageService(db).get_usage_history(current_user.id, action=action, limit=limit)


@router.get("/analytics", response_model=UsageAnalytics)
async def usage_analytics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user_id: Optional[UUID] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    start, end = _window(start_date, end_date)
    return await UsageService(db).usage_analytics(start, end, user_id=_scope(current_user, user_id))


@router.get("/generation-metrics", response_model=GenerationMetrics)
async def generation_metrics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user_id: Optional[UUID] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    start, end = _window(start_date, end_date)
    return await UsageService(db).generation_metrics(start, end, user_id=_scope(current_user, user_id))


@router.get("/popular-models", response_model=List[PopularModel])
async def popular_models(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(POPULAR_MODELS_LIMIT, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    start, end = _window(start_date, end_date)
    return await UsageService(db).popular_models(start, end, limit=limit)


@router.get("/activity", response_model=UserActivitySummary)
async def user_activity(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's activity over the last 30 days"""
    return await UsageService(db).user_activity_summary(current_user.id)


@router.delete("/cleanup", response_model=CleanupResult)
async def cleanup_usage_data(
    max_age_days: int = Query(settings.USAGE_RETENTION_DAYS, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete events past the retention window"""
    async with transaction(db):
        result = await UsageService(db).cleanup_old_usage_data(max_age_days)
    return result
