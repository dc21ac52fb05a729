"""
Configuration and settings for the workspace registry.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # User store: Redis when REDIS_URL is set, local JSON file otherwise
    redis_url: Optional[str] = Field(default=None)
    redis_key_prefix: str = Field(default="user:")
    users_file_path: str = Field(default="users.db")
    store_timeout_seconds: float = Field(default=5.0, gt=0)

    # Shared password protecting the API; disabled when unset
    app_password: Optional[str] = Field(default=None)

    # Cookies
    cookie_secure: bool = Field(default=False)
    cookie_max_age_seconds: int = Field(default=24 * 60 * 60)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
