"""Configuration management for the URL shortener application.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from app.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    limit = settings.ENCODE_RATE_LIMIT

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- BASE_URL may be left empty; the request base URL is used instead.
- RATE_LIMIT_BACKEND="auto" probes Redis at startup, "memory" skips the probe.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "development"
    BASE_URL: str = ""
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://urlshortener:urlshortener@db:5432/urlshortener"
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Redis (shared throttle counters)
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 1.0
    RATE_LIMIT_BACKEND: Literal["auto", "memory"] = "auto"

    # Throttling policy, per client IP
    ENCODE_RATE_LIMIT: int = 2
    ENCODE_RATE_PERIOD: int = 60
    DECODE_RATE_LIMIT: int = 5
    DECODE_RATE_PERIOD: int = 60

    # Short code config
    SHORT_CODE_LENGTH: int = Field(default=6, ge=6, le=10)
    CODE_GENERATION_MAX_ATTEMPTS: int = Field(default=10, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
