"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_store_settings() -> "StoreSettings":
    return StoreSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_admin_settings() -> "AdminSettings":
    return AdminSettings()  # type: ignore[call-arg]


class RateLimitSettings(BaseSettings):
    """Fixed-window limiter configuration."""

    enabled: bool = Field(
        True,
        description="Enable the rate limit dependency on API routes",
    )
    window_ms: int = Field(
        60_000,
        description="Window length in milliseconds",
        gt=0,
    )
    max_requests: int = Field(
        60,
        description="Maximum number of admitted requests per window and client",
        gt=0,
    )
    key_prefix: str = Field(
        "rate-limit:",
        description="Namespace for limiter keys in the shared store",
    )
    reset_expiry_on_change: bool = Field(
        False,
        description="Refresh the stored record's TTL on every admitted request",
    )
    fail_open: bool = Field(
        True,
        description="Admit requests when the store is unavailable (False answers 503)",
    )
    atomic: bool = Field(
        False,
        description="Use the atomic Redis script instead of GET/SET (redis backend only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Backing key-value store configuration."""

    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Window store backend",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (redis backend only)",
    )
    socket_timeout_seconds: float = Field(
        0.5,
        description="Redis connect/operation timeout in seconds",
        gt=0,
    )
    memory_max_entries: int | None = Field(
        100_000,
        description="Maximum number of keys kept by the in-memory store",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class AdminSettings(BaseSettings):
    """Administrative endpoint configuration."""

    api_keys: str | None = Field(
        None,
        description="Comma-separated admin keys accepted in X-Admin-Key (unset disables admin endpoints)",
    )

    model_config = SettingsConfigDict(
        env_prefix="ADMIN_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level",
    )
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Log destination",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file at this size (0 disables rotation)",
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate request correlation ids",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    admin: AdminSettings = Field(default_factory=_build_admin_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
