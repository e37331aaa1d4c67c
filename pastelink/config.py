"""Configuration management for the PasteLink text store.

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
    from pastelink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Access limits**::
    if len(content) > settings.MAX_CONTENT_LENGTH:
        ...

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- ADMIN_PASSWORD_HASH is a ``pbkdf2_sha256$iterations$salt$hex`` string;
  an empty value disables admin login entirely.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from pastelink.enums import CacheBackend


class Settings(BaseSettings):
    APP_NAME: str = "pastelink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://pastelink:pastelink@db:5432/pastelink"
    DATABASE_ECHO: bool = False

    # Redis (only used when CACHE_BACKEND=redis)
    REDIS_URL: str = "redis://redis:6379/0"

    # Text records
    CODE_LENGTH: int = 6
    CODE_MAX_ATTEMPTS: int = 100
    MAX_CONTENT_LENGTH: int = 100_000
    MAX_EXPIRY_HOURS: int = 168  # 7 days
    MAX_VIEW_LIMIT: int = 1_000_000

    # Read cache
    CACHE_ENABLED: bool = True
    CACHE_BACKEND: CacheBackend = CacheBackend.MEMORY
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_ENTRIES: int = 10_000
    CACHE_KEY_PREFIX: str = "text"

    # Sliding-window rate limiting, per action and client IP
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Sessions, CSRF and response hardening
    SESSION_SECRET_KEY: str = "change-me"
    SESSION_COOKIE_NAME: str = "pastelink_session"
    SESSION_TIMEOUT_SECONDS: int = 3600
    SESSION_SECURE: bool = True
    CSRF_ENABLED: bool = True
    SECURITY_HEADERS: bool = True
    TRUST_PROXY_HEADERS: bool = False

    # Administrator
    ADMIN_USER: str = "admin"
    ADMIN_PASSWORD_HASH: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
