# backend/app/core/constants.py
from enum import Enum
from typing import Dict, Any


class GenerationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ProviderStatus(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class UsageAction(str, Enum):
    GENERATION_STARTED = "generation_started"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_FAILED = "generation_failed"
    IMAGE_UPLOADED = "image_uploaded"
    IMAGE_DOWNLOADED = "image_downloaded"
    TOKENS_PURCHASED = "tokens_purchased"
    LOGIN = "login"
    LOGOUT = "logout"


class LedgerEntryKind(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"
    GRANT = "grant"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class FileCategory(str, Enum):
    PRODUCT_IMAGE = "product_image"
    MODEL_IMAGE = "model_image"
    GENERATED_IMAGE = "generated_image"
    PROFILE_IMAGE = "profile_image"


class DebitPolicy(str, Enum):
    # Record the declared cost as used even when the balance could not cover it
    NOMINAL = "nominal"
    # Record only what the balance actually covered
    AVAILABLE = "available"


# Provider status -> internal generation status
PROVIDER_STATUS_MAP: Dict[ProviderStatus, GenerationStatus] = {
    ProviderStatus.STARTING: GenerationStatus.PROCESSING,
    ProviderStatus.PROCESSING: GenerationStatus.PROCESSING,
    ProviderStatus.SUCCEEDED: GenerationStatus.COMPLETED,
    ProviderStatus.FAILED: GenerationStatus.FAILED,
    ProviderStatus.CANCELED: GenerationStatus.CANCELLED,
}


# Model catalog: provider model reference and token cost per generation
AI_MODELS: Dict[str, Dict[str, Any]] = {
    "stable-diffusion-xl": {
        "name": "Stable Diffusion XL",
        "provider_model": "stability-ai/sdxl",
        "cost": 1,
        "aspect_ratios": ["1:1", "16:9", "9:16", "3:2", "2:3"],
    },
    "stable-diffusion-3": {
        "name": "Stable Diffusion 3",
        "provider_model": "stability-ai/stable-diffusion-3",
        "cost": 2,
        "aspect_ratios": ["1:1", "16:9", "9:16", "3:2", "2:3", "4:3", "3:4"],
    },
    "flux-dev": {
        "name": "Flux Dev",
        "provider_model": "black-forest-labs/flux-dev",
        "cost": 1,
        "aspect_ratios": ["1:1", "16:9", "9:16"],
    },
}

DEFAULT_AI_MODEL = "stable-diffusion-3"

# Page sizes
USER_GENERATIONS_PAGE_SIZE = 20
ADMIN_GENERATIONS_PAGE_SIZE = 50
USAGE_HISTORY_PAGE_SIZE = 50
TOKEN_PURCHASES_PAGE_SIZE = 20
PENDING_QUEUE_BATCH_SIZE = 10
POPULAR_MODELS_LIMIT = 10
MAX_PAGE_SIZE = 200

ACTIVITY_WINDOW_DAYS = 30

# Hard cap on retries per generation, mirrored by a database check constraint
MAX_RETRY_COUNT = 3

WEBHOOK_SIGNATURE_HEADER = "Webhook-Signature"
