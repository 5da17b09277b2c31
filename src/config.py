from __future__ import annotations

from functools import cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    database_url: str = "sqlite:///tariffs.db"
    redis_url: str = "redis://localhost:6379/0"
    cache_backend: Literal["redis", "memory", "none"] = "redis"
    cache_ttl_seconds: int = Field(default=300, gt=0)

    # Daily sync trigger, UTC wall clock.
    sync_hour: int = Field(default=3, ge=0, le=23)
    sync_minute: int = Field(default=0, ge=0, le=59)
    sync_on_startup: bool = True
    sync_request_delay_seconds: float = Field(default=0.1, ge=0)

    direct_read_delay_seconds: float = Field(default=0.3, ge=0)

    frankfurter_base_url: str = "https://api.frankfurter.app"
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
