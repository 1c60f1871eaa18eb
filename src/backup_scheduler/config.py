from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BACKUP_SCHEDULER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///backup_system.db"
    backup_root: Path = Field(default=Path("backups"))
    copy_timeout_seconds: PositiveInt | None = None
    log_level: str = "INFO"

    @field_validator("backup_root", mode="after")
    @classmethod
    def _resolve_backup_root(cls, value: Path) -> Path:
        return value.expanduser().resolve(strict=False)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = value.upper().strip()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level: {value}")
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
