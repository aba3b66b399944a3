# backend/app/schemas/usage.py
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, UUID4
from typing import Optional, Dict, Any, List
from datetime import datetime

from app.core.constants import UsageAction


class UsageEventCreate(BaseModel):
    action: UsageAction
    metadata: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None


class UsageEvent(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    user_id: UUID4
    action: UsageAction
    timestamp: datetime
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("event_metadata", "metadata"),
    )
    ip_address: Optional[str] = None
    session_id: Optional[str] = None


class UsageAnalytics(BaseModel):
    total_events: int
    events_by_action: Dict[str, int]
    unique_users: int
    daily_breakdown: Dict[str, int]


class GenerationMetrics(BaseModel):
    total_generations: int
    successful_generations: int
    failed_generations: int
    success_rate: float
    average_processing_time_ms: int


class PopularModel(BaseModel):
    model: str
    count: int


class UserActivitySummary(BaseModel):
    user_id: UUID4
    generations_started: int
    generations_completed: int
    generations_failed: int
    images_uploaded: int
    images_downloaded: int
    logins: int
    last_activity: Optional[datetime] = None


class CleanupResult(BaseModel):
    deleted: int
    cutoff: datetime
