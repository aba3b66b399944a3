# backend/app/db/models/__init__.py
from app.db.models.user import User
from app.db.models.generation import Generation
from app.db.models.usage import UsageEvent
from app.db.models.token import TokenTransaction, TokenPurchase
from app.db.models.file_asset import FileAsset

__all__ = ["User", "Generation", "UsageEvent", "TokenTransaction", "TokenPurchase", "FileAsset"]
