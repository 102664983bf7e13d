"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from interview_cards.config import settings

    # Access settings
    db_url = settings.DATABASE_URL or settings.POSTGRES_URL
    debounce = settings.SESSION_SAVE_DEBOUNCE_MS
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Interview Cards"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "flashcards"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "flashcards"

    # Full async SQLAlchemy URL; takes precedence over POSTGRES_* when set
    DATABASE_URL: Optional[str] = None

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DATABASE_URL_RESOLVED(self) -> str:
        """Connection URL actually used by the engine."""
        return self.DATABASE_URL or self.POSTGRES_URL

    # Review sessions
    REVIEW_CARD_LIMIT: int = 500
    REVIEW_REGISTRY_MAX_SIZE: int = 1000  # Live interactions kept in memory (LRU)
    SESSION_SAVE_DEBOUNCE_MS: int = 500
    REVIEW_MAX_TIME_SPENT_MS: int = 300_000  # Time spent per card is capped at 5 minutes

    # Scheduler
    FUZZY_RETRY_MINUTES: int = 10

    # Library / summary cache
    SUMMARY_SYNC_PAGE_SIZE: int = 500
    LIBRARY_DEFAULT_PAGE_SIZE: int = 40
    LIBRARY_MAX_PAGE_SIZE: int = 100

    # Content
    DEFAULT_CONTENT_LANGUAGE: str = "zh-CN"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
