"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from assetsync.storage.config import StorageConfig


class Settings(BaseSettings):
    """AssetSync application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/assetsync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # Tenancy
    default_tenant_id: str = Field(default="default", min_length=1)

    # Storage (JSON in STORAGE_CONFIG, e.g. {"provider": "s3", "bucket": "photos"})
    storage_config: StorageConfig | None = None

    # Data sync
    extract_timeout_seconds: float = Field(default=60.0, gt=0)
    sse_heartbeat_seconds: float = Field(default=15.0, gt=0)
