"""Window counter interfaces.

The guard depends on this abstraction (not the concrete implementation) so
the shared store can be Redis in production and an in-process fake in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from windowlimit.core.errors import ValidationAppError


@dataclass(frozen=True)
class AcquireResult:
    """Result of a single check-and-increment.

    Attributes:
        admitted: Whether the call was counted and may proceed.
        count: Stored count after the call (unchanged when rejected).
        limit: Max admitted calls per window.
        remaining: Calls still admissible in the current window.
        retry_after_seconds: Remaining window lifetime when rejected, else None.
    """

    admitted: bool
    count: int
    limit: int
    remaining: int
    retry_after_seconds: int | None = None


def validate_acquire_args(key: str, max_count: int, window_seconds: int) -> None:
    """Reject arguments no backend can honour.

    Raises:
        ValidationAppError: If key is empty or limits are not positive.
    """

    if not key:
        raise ValidationAppError(code="invalid_counter_key", message="key must be a non-empty string")
    if max_count < 1:
        raise ValidationAppError(
            code="invalid_max_count",
            message="max_count must be >= 1",
            details={"field": "max_count"},
        )
    if window_seconds < 1:
        raise ValidationAppError(
            code="invalid_window",
            message="window_seconds must be >= 1",
            details={"field": "window_seconds"},
        )


class AbstractWindowCounter(ABC):
    """Interface for fixed-window counter stores.

    Implementations must execute ``try_acquire`` as one indivisible unit per
    key: read the count, reject without mutation when ``count + 1`` would
    exceed ``max_count``, otherwise increment and refresh the expiry to
    ``window_seconds`` from now.
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def try_acquire(self, key: str, max_count: int, window_seconds: int) -> AcquireResult:
        """Atomically check and increment the counter for ``key``.

        Args:
            key: Counter key (see ``derive_key``).
            max_count: Maximum admitted calls per window.
            window_seconds: Window lifetime, refreshed on every admitted call.

        Returns:
            AcquireResult describing the decision and the count after it.

        Raises:
            StoreUnavailableError: If the store cannot complete the operation.
            ValidationAppError: If the arguments are invalid.
        """
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release any resources held by the store client."""
        return None
