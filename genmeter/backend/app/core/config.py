# backend/app/core/config.py
from typing import List, Optional
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from app.core.constants import MAX_RETRY_COUNT, DebitPolicy

# Locate the .env file relative to the project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent  # Goes to genmeter root
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "GenMeter"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./genmeter.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # Compute provider (Replicate-style prediction API)
    PROVIDER_API_TOKEN: Optional[str] = None
    PROVIDER_BASE_URL: str = "https://api.replicate.com"
    PROVIDER_WEBHOOK_SECRET: Optional[str] = None
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Token metering
    GENERATION_TOKEN_COST: int = 1
    # Bounded by the retry_count check constraint on generations
    MAX_GENERATION_RETRIES: int = Field(default=MAX_RETRY_COUNT, ge=0, le=MAX_RETRY_COUNT)
    RETRY_REQUIRES_BALANCE: bool = False
    DEBIT_POLICY: DebitPolicy = DebitPolicy.NOMINAL
    FREE_SIGNUP_TOKENS: int = 3

    # Usage log retention
    USAGE_RETENTION_DAYS: int = 90

    # URL
    BACKEND_URL: str = "http://localhost:8000"


settings = Settings()
