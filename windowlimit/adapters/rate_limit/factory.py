"""Factory pattern for creating window counter store instances."""

from windowlimit.adapters.rate_limit.base import AbstractWindowCounter
from windowlimit.adapters.rate_limit.in_memory import InMemoryWindowCounter
from windowlimit.adapters.rate_limit.redis_store import RedisWindowCounter
from windowlimit.core.config import settings
from windowlimit.core.errors import ValidationAppError


def create_window_counter() -> AbstractWindowCounter:
    """Factory function to instantiate the counter store based on settings.

    Reads configuration from windowlimit.core.config.settings (Pydantic Settings).

    Returns:
        AbstractWindowCounter: Configured counter store.

    Raises:
        ValidationAppError: If the configured backend is unknown.
    """
    backend = settings.rate_limit.backend.lower()

    if backend == "redis":
        return RedisWindowCounter.from_url(
            settings.redis.url,
            socket_timeout=settings.redis.socket_timeout_seconds,
            socket_connect_timeout=settings.redis.socket_connect_timeout_seconds,
            max_connections=settings.redis.max_connections,
            timeout_seconds=settings.rate_limit.store_timeout_seconds,
            retry_on_unavailable=settings.rate_limit.retry_on_unavailable,
            retry_delay_seconds=settings.rate_limit.retry_delay_seconds,
        )

    if backend == "memory":
        return InMemoryWindowCounter()

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=f"Unknown rate limit backend: '{backend}'. Supported backends: redis, memory",
        details={"backend": backend},
    )
