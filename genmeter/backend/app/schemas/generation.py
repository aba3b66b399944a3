# backend/app/schemas/generation.py
from pydantic import BaseModel, ConfigDict, Field, UUID4, field_validator
from typing import Optional, Dict, Any, List
from datetime import datetime

from app.core.constants import GenerationStatus, DEFAULT_AI_MODEL


class GenerationParameters(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow", protected_namespaces=())

    model: str = DEFAULT_AI_MODEL
    style: Optional[str] = None
    quality: Optional[str] = None
    aspect_ratio: Optional[str] = Field(default=None, alias="aspectRatio")
    seed: Optional[int] = None


class GenerationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_image_ref: str = Field(..., min_length=1, alias="productImageRef")
    model_image_ref: Optional[str] = Field(default=None, alias="modelImageRef")
    prompt: str = Field(..., min_length=1)
    parameters: GenerationParameters = Field(default_factory=GenerationParameters)

    @field_validator("prompt", "product_image_ref")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class GenerationCreated(BaseModel):
    generation_id: UUID4
    status: GenerationStatus
    estimated_cost: int
    prompt: str


class GenerationStatusUpdate(BaseModel):
    status: GenerationStatus
    result_ref: Optional[str] = None
    error: Optional[str] = None
    external_id: Optional[str] = None


class GenerationCancel(BaseModel):
    reason: Optional[str] = None


class Generation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    user_id: UUID4
    status: GenerationStatus
    product_image_ref: str
    model_image_ref: Optional[str] = None
    prompt: str
    parameters: Dict[str, Any]
    token_cost: int
    tokens_used: int
    retry_count: int
    result_ref: Optional[str] = None
    error: Optional[str] = None
    external_id: Optional[str] = None
    processing_time_ms: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class GenerationList(BaseModel):
    items: List[Generation]
    limit: int
    offset: int


class GenerationStatusSummary(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
