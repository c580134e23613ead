from __future__ import annotations

import os
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pathstore.logging import get_logger

logger = get_logger(__name__)


class Isolation(str, Enum):
    """Transaction isolation levels accepted by the transaction runner."""

    READ_COMMITTED = "read_committed"
    REPEATABLE_READ = "repeatable_read"
    SERIALIZABLE = "serializable"

    @classmethod
    def _missing_(cls, value: object) -> "Isolation | None":
        # accepts "repeatable-read", "REPEATABLE READ" and the like
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def sql(self) -> str:
        return self.value.replace("_", " ").upper()


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the store handle and repo defaults."""

    database_url: str = env_field(
        "postgresql://localhost:5432/pathstore", "DATABASE_URL"
    )
    pool_min_size: int = env_field(2, "DB_POOL_MIN_SIZE", ge=0)
    pool_max_size: int = env_field(10, "DB_POOL_MAX_SIZE", ge=1)
    pool_timeout: float = env_field(
        30.0,
        "DB_POOL_TIMEOUT",
        gt=0,
        description="Seconds to wait for a pooled connection before failing",
    )
    statement_timeout_ms: int = env_field(
        0,
        "DB_STATEMENT_TIMEOUT_MS",
        ge=0,
        description="Server-side statement timeout applied to every pooled connection; 0 disables it",
    )
    default_isolation: Isolation = env_field(
        Isolation.READ_COMMITTED, "DEFAULT_ISOLATION"
    )
    view_dedupe_seconds: int = env_field(60, "VIEW_DEDUPE_SECONDS")
    event_page_size: int = env_field(500, "EVENT_PAGE_SIZE", ge=1, le=1000)
    log_level: str = env_field("INFO", "LOG_LEVEL")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("default_isolation", mode="before")
    @classmethod
    def _validate_isolation(cls, value: Any) -> Isolation:
        return Isolation(value)

    @field_validator("pool_max_size")
    @classmethod
    def _validate_pool_bounds(cls, value: int, info) -> int:
        min_size = info.data.get("pool_min_size", 0)
        if value < min_size:
            logger.warning(
                "pool_max_below_min",
                pool_min_size=min_size,
                pool_max_size=value,
            )
            return min_size
        return value


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
