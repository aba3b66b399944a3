# backend/app/services/usage_service.py
"""Usage event log and the analytics computed from it."""
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import (
    ACTIVITY_WINDOW_DAYS,
    MAX_PAGE_SIZE,
    POPULAR_MODELS_LIMIT,
    USAGE_HISTORY_PAGE_SIZE,
    UsageAction,
)
from app.core.exceptions import ValidationError
from app.core.logging import logger
from app.db.base import utcnow
from app.db.models.usage import UsageEvent
from app.db.repositories.usage_repository import UsageEventRepository


def as_naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; convert aware inputs to match"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _check_window(start: datetime, end: datetime):
    start, end = as_naive_utc(start), as_naive_utc(end)
    if start > end:
        raise ValidationError("start_date must not be after end_date")
    return start, end


class UsageService:
    """
    Append-only usage log.

    ``log_event`` only flushes; the event becomes durable with whatever unit
    of work the caller commits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.events = UsageEventRepository(session)

    async def log_event(
        self,
        user_id: UUID,
        action: UsageAction,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> UsageEvent:
        action = UsageAction(action)
        event = await self.events.create({
            "user_id": user_id,
            "action": action.value,
            "event_metadata": dict(metadata or {}),
            "ip_address": ip_address,
            "session_id": session_id,
            "timestamp": as_naive_utc(timestamp) if timestamp else utcnow(),
        })
        logger.debug(f"Usage event {action.value} for user {user_id}", extra={"user_id": user_id})
        return event

    async def get_usage_history(
        self,
        user_id: UUID,
        action: Optional[UsageAction] = None,
        limit: int = USAGE_HISTORY_PAGE_SIZE,
    ) -> List[UsageEvent]:
        if limit < 1:
            raise ValidationError("limit must be positive")
        return await self.events.get_by_user(user_id, action=action, limit=min(limit, MAX_PAGE_SIZE))

    async def usage_analytics(
        self,
        start: datetime,
        end: datetime,
        user_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        """Event totals, per-action counts, distinct users and a per-day breakdown"""
        start, end = _check_window(start, end)
        events = await self.events.get_in_window(start, end, user_id=user_id)

        by_action = {action.value: 0 for action in UsageAction}
        daily: Dict[str, int] = {}
        users = set()
        for event in events:
            by_action[event.action] = by_action.get(event.action, 0) + 1
            day = event.timestamp.date().isoformat()
            daily[day] = daily.get(day, 0) + 1
            users.add(event.user_id)

        return {
            "total_events": len(events),
            "events_by_action": by_action,
            "unique_users": len(users),
            "daily_breakdown": daily,
        }

    async def generation_metrics(
        self,
        start: datetime,
        end: datetime,
        user_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        """
        Started/completed/failed counts, success rate as a percentage and the
        average processing time of completed generations.

        Retries log another generation_started, so the rate is per attempt.
        """
        start, end = _check_window(start, end)
        events = await self.events.get_in_window(
            start,
            end,
            user_id=user_id,
            actions=[
                UsageAction.GENERATION_STARTED,
                UsageAction.GENERATION_COMPLETED,
                UsageAction.GENERATION_FAILED,
            ],
        )

        counts = Counter(event.action for event in events)
        started = counts[UsageAction.GENERATION_STARTED.value]
        completed = counts[UsageAction.GENERATION_COMPLETED.value]
        failed = counts[UsageAction.GENERATION_FAILED.value]

        success_rate = 0.0
        if started:
            success_rate = min(100.0, max(0.0, completed / started * 100))

        durations = [
            event.event_metadata.get("processing_time_ms")
            for event in events
            if event.action == UsageAction.GENERATION_COMPLETED.value
            and isinstance((event.event_metadata or {}).get("processing_time_ms"), (int, float))
        ]
        average = int(sum(durations) / len(durations) + 0.5) if durations else 0

        return {
            "total_generations": started,
            "successful_generations": completed,
            "failed_generations": failed,
            "success_rate": round(success_rate, 2),
            "average_processing_time_ms": average,
        }

    async def popular_models(
        self,
        start: datetime,
        end: datetime,
        limit: int = POPULAR_MODELS_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Models ranked by how many generations were started with them"""
        start, end = _check_window(start, end)
        if limit < 1:
            raise ValidationError("limit must be positive")

        events = await self.events.get_in_window(start, end, actions=[UsageAction.GENERATION_STARTED])
        # Client-reported metadata is free-form; only string model names count
        counts = Counter(
            event.event_metadata.get("model")
            for event in events
            if isinstance((event.event_metadata or {}).get("model"), str)
            and event.event_metadata["model"]
        )
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [{"model": model, "count": count} for model, count in ranked[:limit]]

    async def user_activity_summary(self, user_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Per-user counts over the trailing activity window"""
        end = as_naive_utc(now) if now else utcnow()
        start = end - timedelta(days=ACTIVITY_WINDOW_DAYS)
        counts = dict(await self.events.count_by_action(start, end, user_id=user_id))
        last_activity = await self.events.last_timestamp(user_id, start, end)

        return {
            "user_id": user_id,
            "generations_started": counts.get(UsageAction.GENERATION_STARTED.value, 0),
            "generations_completed": counts.get(UsageAction.GENERATION_COMPLETED.value, 0),
            "generations_failed": counts.get(UsageAction.GENERATION_FAILED.value, 0),
            "images_uploaded": counts.get(UsageAction.IMAGE_UPLOADED.value, 0),
            "images_downloaded": counts.get(UsageAction.IMAGE_DOWNLOADED.value, 0),
            "logins": counts.get(UsageAction.LOGIN.value, 0),
            "last_activity": last_activity,
        }

    async def cleanup_old_usage_data(self, max_age_days: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Delete events older than ``max_age_days``; returns the count and cutoff"""
        if max_age_days < 0:
            raise ValidationError("max_age_days must not be negative")

        cutoff = (as_naive_utc(now) if now else utcnow()) - timedelta(days=max_age_days)
        deleted = await self.events.delete_older_than(cutoff)
        logger.info(f"Deleted {deleted} usage events older than {cutoff.isoformat()}")
        return {"deleted": deleted, "cutoff": cutoff}
