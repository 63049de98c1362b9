"""Centralized settings management for the Venue Matching Engine."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.configs.config import Config


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the project root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = False

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    BASE_DIR: Path = Config.PROJECT_ROOT

    TAXONOMY_SNAPSHOT_PATH: Path = Config.TAXONOMY_DATA_PATH
    MATCHING_CONFIG_PATH: Path = Config.MATCHING_CONFIG_PATH
    VENUE_DATA_PATH: Path | None = None

    # -------------------------------------------------------------------------
    # MATCHING
    # -------------------------------------------------------------------------
    MATCH_TIMEOUT_SECONDS: float | None = Field(default=None, gt=0)

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Config.PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
