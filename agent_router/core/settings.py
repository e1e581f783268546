"""Application settings and lazy settings loader."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration.

    Every field has a default, so the router works without any environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Alternate rule table (JSON). When unset the built-in decision tree is used.
    RULES_FILE: str | None = None

    # Decision tree thresholds ("refactoring signals")
    MULTIPLE_MODELS_THRESHOLD: int = Field(default=2, ge=1)
    JOIN_TABLES_THRESHOLD: int = Field(default=3, ge=1)
    REUSE_THRESHOLD: int = Field(default=3, ge=1)
    TRIVIAL_LINE_LIMIT: int = Field(default=10, ge=1)
    CONTROLLER_ACTION_LINE_LIMIT: int = Field(default=15, ge=1)
    FAT_MODEL_LINE_LIMIT: int = Field(default=400, ge=1)

    # API security
    API_KEY: str | None = None
    API_KEY_HEADER: str = "X-API-Key"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance (lazy-loaded)."""
    return Settings()
