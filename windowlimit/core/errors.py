"""Application-level exception types.

This module defines the limiter's error taxonomy, enabling consistent error
handling, logging, and API responses:

- RateLimitExceededError: quota exhausted for a counter key (caller may retry later)
- StoreUnavailableError: the shared counter store could not be reached in time
- InvalidPolicyError: a malformed policy was declared (setup-time failure)
- ValidationAppError: invalid arguments or configuration
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent without forcing every
    error to fill every field.
    """

    code: str
    message: str
    hint: str
    field: str
    limit: int
    window_seconds: int
    count: int
    retry_after: int
    backend: str
    cause: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidPolicyError(AppError):
    """Raised when a rate limit policy is malformed.

    Detected when the policy is built or registered, never per request.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        details: ErrorDetails | None = {"field": field} if field else None
        super().__init__(code="invalid_policy", message=message, details=details)


class StoreUnavailableError(AppError):
    """Raised when the shared counter store cannot complete an operation.

    Attributes:
        cause: The underlying exception (connection error, timeout, ...).
    """

    def __init__(self, message: str, *, cause: BaseException | None = None, backend: str | None = None) -> None:
        details: ErrorDetails = {}
        if cause is not None:
            details["cause"] = type(cause).__name__
        if backend:
            details["backend"] = backend
        super().__init__(code="store_unavailable", message=message, details=details or None)
        self.cause = cause


class RateLimitExceededError(AppError):
    """Raised when a guarded invocation is over its quota.

    Attributes:
        key: Counter key that was exhausted.
        max_count: Maximum admitted calls per window.
        window_seconds: Window length in seconds.
        count_after: Stored count observed by the rejected call (unchanged by it).
        retry_after_seconds: Remaining lifetime of the window, when known.
    """

    def __init__(
        self,
        *,
        key: str,
        max_count: int,
        window_seconds: int,
        count_after: int,
        retry_after_seconds: int | None = None,
    ) -> None:
        details: ErrorDetails = {
            "limit": max_count,
            "window_seconds": window_seconds,
            "count": count_after,
        }
        if retry_after_seconds is not None:
            details["retry_after"] = retry_after_seconds
        super().__init__(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details=details,
        )
        self.key = key
        self.max_count = max_count
        self.window_seconds = window_seconds
        self.count_after = count_after
        self.retry_after_seconds = retry_after_seconds
