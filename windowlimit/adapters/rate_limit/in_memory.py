"""In-memory fixed-window counter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, which also makes each
  check-and-increment atomic.
- Same contract as the Redis store, so it doubles as the fake store in tests.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from windowlimit.adapters.rate_limit.base import AbstractWindowCounter, AcquireResult, validate_acquire_args


@dataclass
class _WindowRecord:
    count: int
    expires_at: float


class InMemoryWindowCounter(AbstractWindowCounter):
    """Counter store keeping window records in a process-local dict.

    A record is created by the first admitted call for a key, its expiry is
    pushed to ``now + window_seconds`` by every admitted call, and it is
    dropped once the clock reaches that expiry. Rejected calls leave both the
    count and the expiry untouched. Expired records of keys that are never
    touched again are swept on a later ``try_acquire``.
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 1.0,
    ) -> None:
        """Initialize the in-memory counter.

        Args:
            clock: Time source function returning seconds.
            sweep_interval_seconds: Minimum pause between two sweeps of
                expired records.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, _WindowRecord] = {}
        self._sweep_interval = sweep_interval_seconds
        self._last_sweep = clock()

    def _live_record_locked(self, key: str, now: float) -> _WindowRecord | None:
        record = self._records.get(key)
        if record is not None and now >= record.expires_at:
            del self._records[key]
            return None
        return record

    def _evict_expired_locked(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        expired_keys = [k for k, record in self._records.items() if now >= record.expires_at]
        for key in expired_keys:
            del self._records[key]

    async def try_acquire(self, key: str, max_count: int, window_seconds: int) -> AcquireResult:
        """Check and increment the counter for ``key`` under the store lock.

        Raises:
            ValidationAppError: If the arguments are invalid.
        """
        validate_acquire_args(key, max_count, window_seconds)

        with self._lock:
            now = self._clock()
            self._evict_expired_locked(now)
            record = self._live_record_locked(key, now)
            current = record.count if record else 0

            if current + 1 > max_count:
                retry_after = max(0, int(math.ceil(record.expires_at - now))) if record else 0
                return AcquireResult(
                    admitted=False,
                    count=current,
                    limit=max_count,
                    remaining=0,
                    retry_after_seconds=retry_after,
                )

            if record is None:
                record = _WindowRecord(count=0, expires_at=now)
                self._records[key] = record
            record.count += 1
            record.expires_at = now + window_seconds

            return AcquireResult(
                admitted=True,
                count=record.count,
                limit=max_count,
                remaining=max(0, max_count - record.count),
            )

    def peek(self, key: str) -> int:
        """Return the live count for ``key`` without mutating it (0 when absent)."""

        with self._lock:
            record = self._live_record_locked(key, self._clock())
            return record.count if record else 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._records.clear()
