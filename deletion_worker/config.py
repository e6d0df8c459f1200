"""
Configuration and settings for the deletion worker.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Environment-backed settings, fixed for the lifetime of the process."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Token signing
    token_secret: Optional[str] = Field(default=None, env="TOKEN_SECRET")
    token_ttl_seconds: int = Field(default=300, gt=0, env="TOKEN_TTL_SECONDS")

    # Database holding the deleted_files backlog
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")
    db_driver: str = Field(default="postgresql+psycopg2", env="DB_DRIVER")
    db_hostname: Optional[str] = Field(default=None, env="DB_HOSTNAME")
    db_name: Optional[str] = Field(default=None, env="DB_NAME")
    db_username: Optional[str] = Field(default=None, env="DB_USERNAME")
    db_password: Optional[str] = Field(default=None, env="DB_PASSWORD")

    # Remote deletion endpoint
    delete_endpoint: Optional[str] = Field(default=None, env="DELETE_ENDPOINT")
    request_timeout_seconds: float = Field(
        default=30.0, gt=0, env="REQUEST_TIMEOUT_SECONDS"
    )

    # Loop tuning
    concurrency: int = Field(default=5, ge=1, env="CONCURRENCY")
    page_size: int = Field(default=10, ge=1, env="PAGE_SIZE")
    report_interval_seconds: float = Field(
        default=1.0, gt=0, env="REPORT_INTERVAL_SECONDS"
    )
    retry_backoff_seconds: float = Field(
        default=1.0, ge=0, env="RETRY_BACKOFF_SECONDS"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )

    def resolved_database_url(self) -> Optional[str]:
        """
        Return DATABASE_URL, or build one from the individual DB_* parts.

        Returns None when neither is fully configured.
        """
        if self.database_url:
            return self.database_url
        if not (self.db_hostname and self.db_name and self.db_username):
            return None
        url = URL.create(
            self.db_driver,
            username=self.db_username,
            password=self.db_password,
            host=self.db_hostname,
            database=self.db_name,
        )
        return url.render_as_string(hide_password=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
