# backend/app/schemas/file.py
from pydantic import BaseModel, ConfigDict, Field, UUID4
from typing import Optional
from datetime import datetime

from app.core.constants import FileCategory


class FileAssetCreate(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., pattern=r"^image/")
    size_bytes: int = Field(..., ge=0)
    storage_ref: str = Field(..., min_length=1)
    category: FileCategory = FileCategory.PRODUCT_IMAGE
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    format: Optional[str] = None
    generation_id: Optional[UUID4] = None


class FileAsset(FileAssetCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    user_id: UUID4
    uploaded_at: datetime
