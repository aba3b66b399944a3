from sqlalchemy import Column, String, ForeignKey, DateTime, Integer, Uuid
import uuid
from app.db.base import Base, utcnow


class FileAsset(Base):
    """Metadata for an uploaded or generated image; the bytes live in external storage"""
    __tablename__ = "file_assets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    filename = Column(String(255), nullable=False)
    content_type = Column(String(100), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    storage_ref = Column(String(1000), nullable=False, index=True)
    category = Column(String(50), nullable=False, index=True)

    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    format = Column(String(20), nullable=True)
    generation_id = Column(Uuid, ForeignKey("generations.id", ondelete="SET NULL"), nullable=True)

    uploaded_at = Column(DateTime, nullable=False, default=utcnow, index=True)
