"""Redis-backed fixed-window counter.

The check-and-increment runs as a server-side Lua script, so concurrent
callers on any number of instances are serialized per key by Redis itself.
The script is registered once per client and invoked via EVALSHA (redis-py
falls back to EVAL when the script cache was flushed).
"""

from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from windowlimit.adapters.rate_limit.base import AbstractWindowCounter, AcquireResult, validate_acquire_args
from windowlimit.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


# KEYS[1] = counter key, ARGV[1] = max count, ARGV[2] = window seconds.
# Returns {admitted (0|1), count after, seconds until the record expires}.
FIXED_WINDOW_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local limit = tonumber(ARGV[1])
if current + 1 > limit then
  return {0, current, redis.call('TTL', KEYS[1])}
end
current = redis.call('INCRBY', KEYS[1], 1)
redis.call('EXPIRE', KEYS[1], ARGV[2])
return {1, current, tonumber(ARGV[2])}
"""


def _is_retryable(exc: BaseException) -> bool:
    # A timed out script may already have committed its increment
    if isinstance(exc, (asyncio.TimeoutError, RedisTimeoutError)):
        return False
    return isinstance(exc, (RedisConnectionError, OSError))


class RedisWindowCounter(AbstractWindowCounter):
    """Counter store on a shared Redis instance.

    Every call is bounded by ``timeout_seconds``; on timeout or any Redis
    error the call surfaces ``StoreUnavailableError`` instead of blocking.
    Cancelling the awaiting task cancels the outbound command.
    """

    backend_name = "redis"

    def __init__(
        self,
        client: Redis,
        *,
        timeout_seconds: float = 0.5,
        retry_on_unavailable: bool = False,
        retry_delay_seconds: float = 0.05,
    ) -> None:
        """Initialize the Redis counter.

        Args:
            client: Async Redis client (owns the connection pool).
            timeout_seconds: Upper bound for one script round trip.
            retry_on_unavailable: Retry a call that failed on a connection
                error once before giving up. Timeouts and script errors are
                not retried. A connection dropped after the script ran can
                still count the call twice.
            retry_delay_seconds: Pause before that retry.
        """
        self._client = client
        self._script = client.register_script(FIXED_WINDOW_SCRIPT)
        self._timeout = timeout_seconds
        self._attempts = 2 if retry_on_unavailable else 1
        self._retry_delay = retry_delay_seconds

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = None,
        socket_connect_timeout: float | None = None,
        max_connections: int | None = None,
        **kwargs,
    ) -> "RedisWindowCounter":
        """Build a counter with its own client from a Redis URL."""

        client_kwargs: dict = {
            "decode_responses": True,
            "socket_timeout": socket_timeout,
            "socket_connect_timeout": socket_connect_timeout,
        }
        if max_connections is not None:
            client_kwargs["max_connections"] = max_connections
        client = Redis.from_url(url, **client_kwargs)
        return cls(client, **kwargs)

    async def _run_script(self, key: str, max_count: int, window_seconds: int) -> list:
        return await asyncio.wait_for(
            self._script(keys=[key], args=[max_count, window_seconds]),
            timeout=self._timeout,
        )

    async def try_acquire(self, key: str, max_count: int, window_seconds: int) -> AcquireResult:
        """Run the fixed-window script for ``key``.

        Raises:
            StoreUnavailableError: If Redis errors or does not answer in time.
            ValidationAppError: If the arguments are invalid.
        """
        validate_acquire_args(key, max_count, window_seconds)

        last_error: BaseException | None = None
        for attempt in range(1, self._attempts + 1):
            try:
                raw = await self._run_script(key, max_count, window_seconds)
                return self._to_result(raw, max_count)
            except (RedisError, OSError, asyncio.TimeoutError) as exc:
                last_error = exc
                logger.warning(
                    "rate_limit.store_error",
                    extra={
                        "backend": self.backend_name,
                        "attempt": attempt,
                        "max_attempts": self._attempts,
                        "error_type": type(exc).__name__,
                    },
                )
                if not _is_retryable(exc):
                    break
                if attempt < self._attempts and self._retry_delay:
                    await asyncio.sleep(self._retry_delay)

        raise StoreUnavailableError(
            "Rate limit store is unavailable",
            cause=last_error,
            backend=self.backend_name,
        ) from last_error

    @staticmethod
    def _to_result(raw: list, max_count: int) -> AcquireResult:
        admitted_flag, count, ttl = (int(value) for value in raw)
        count = max(0, count)
        if admitted_flag:
            return AcquireResult(
                admitted=True,
                count=count,
                limit=max_count,
                remaining=max(0, max_count - count),
            )
        # TTL is -1 (no expiry) or -2 (key vanished) in edge cases
        return AcquireResult(
            admitted=False,
            count=count,
            limit=max_count,
            remaining=0,
            retry_after_seconds=ttl if ttl >= 0 else None,
        )

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.wait_for(self._client.ping(), timeout=self._timeout))
        except (RedisError, OSError, asyncio.TimeoutError):
            logger.warning("rate_limit.store_ping_failed", extra={"backend": self.backend_name})
            return False

    async def close(self) -> None:
        await self._client.aclose()
