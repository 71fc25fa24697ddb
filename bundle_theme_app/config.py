from __future__ import annotations

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    BUNDLE_APP_INTERNAL_API_TOKEN: str
    BUNDLE_APP_DB_URL: str = "sqlite:///./bundle_theme_app.db"
    SHOPIFY_ADMIN_API_VERSION: str = "2024-10"
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 20.0
    THEME_BACKUP_DIR: Path = Path("./backups")
    LOG_LEVEL: str = "INFO"

    @field_validator("SHOPIFY_ADMIN_API_VERSION")
    @classmethod
    def validate_api_version(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("SHOPIFY_ADMIN_API_VERSION must be a non-empty string")
        return cleaned

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"LOG_LEVEL must be a standard logging level name, got {value!r}")
        return level

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
