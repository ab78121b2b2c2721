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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    demo_policy_identifier: str = Field(
        "demo",
        description="Policy identifier used by the protected demo route",
    )
    demo_max_count: int = Field(
        5,
        description="Maximum admitted calls per window on the protected demo route",
        ge=1,
    )
    demo_window_seconds: int = Field(
        10,
        description="Window length in seconds for the protected demo route",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Limiter behaviour shared by every guarded operation."""

    enabled: bool = Field(
        True,
        description="Enforce policies; when false every guarded call passes through",
    )
    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Counter store backend (redis for shared state, memory for a single process)",
    )
    key_prefix: str = Field(
        "rate.limit:",
        description="Namespace prepended to every counter key",
    )
    fail_open: bool = Field(
        False,
        description="Admit calls when the counter store is unreachable (default: fail closed)",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on responses",
    )
    store_timeout_seconds: float = Field(
        0.5,
        description="Upper bound for a single check-and-increment round trip",
        gt=0,
    )
    retry_on_unavailable: bool = Field(
        False,
        description=(
            "Retry a store call once after a connection error before surfacing StoreUnavailable; "
            "timeouts are not retried, and a connection lost after the script ran may count the call twice"
        ),
    )
    retry_delay_seconds: float = Field(
        0.05,
        description="Pause before the single retry",
        ge=0,
    )
    trust_proxy_headers: bool = Field(
        False,
        description=(
            "Resolve caller identity from X-Forwarded-For / X-Real-IP headers; enable only behind a proxy "
            "that overwrites them, otherwise clients can pick their own identity"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection settings for the shared Redis counter store."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (use rediss:// for TLS)",
    )
    socket_timeout_seconds: float = Field(
        1.0,
        description="Socket read/write timeout",
        gt=0,
    )
    socket_connect_timeout_seconds: float = Field(
        1.0,
        description="Socket connect timeout",
        gt=0,
    )
    max_connections: int | None = Field(
        None,
        description="Connection pool size limit (None for the redis-py default)",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
