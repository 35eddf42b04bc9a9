"""
Runtime configuration for the files manager.

Values come from environment variables prefixed with FILES_MANAGER_ (or a
.env file next to the process), falling back to the defaults below.

Usage:
    from config.settings import get_settings
    settings = get_settings()
    storage_root = settings.storage_dir
"""
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FILES_MANAGER_",
        env_file=".env",
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:////tmp/files_manager/files_manager.db",
        description="SQLAlchemy URL for the metadata/session/job store",
    )

    # Blob storage
    storage_dir: str = Field(
        default="/tmp/files_manager",
        description="Root directory for uploaded files and thumbnails",
    )

    # Sessions
    session_ttl_seconds: int = Field(default=24 * 60 * 60, ge=1)

    # Thumbnails
    thumbnail_sizes: Tuple[int, ...] = (500, 250, 100)

    # Job queue
    job_max_retries: int = Field(default=3, ge=0)
    job_backoff_seconds: float = Field(default=2.0, ge=0)
    job_visibility_timeout_seconds: int = Field(default=300, ge=1)

    # Workers
    worker_count: int = Field(default=1, ge=0)
    worker_poll_interval: float = Field(default=0.5, gt=0)
    embedded_workers: bool = Field(
        default=True,
        description="Run thumbnail workers inside the API process",
    )
    maintenance_interval_seconds: float = Field(default=60.0, gt=0)
    job_retention_hours: int = Field(default=24 * 7, ge=1)

    # Listing
    page_size: int = Field(default=20, ge=1)

    # Logging
    log_dir: str = "/tmp/files_manager/logs"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 5000

    @property
    def storage_path(self) -> Path:
        return Path(self.storage_dir)


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
