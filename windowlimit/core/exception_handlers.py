"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- RateLimitExceededError → 429 with Retry-After / X-RateLimit-* headers
- StoreUnavailableError → 503 (quota exhaustion and outages stay distinguishable)
- ValidationAppError → 400
- InvalidPolicyError and any other AppError → 500 (server-side setup fault)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from windowlimit.core.config import settings
from windowlimit.core.errors import (
    AppError,
    RateLimitExceededError,
    StoreUnavailableError,
    ValidationAppError,
)
from windowlimit.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, RateLimitExceededError):
        return 429
    if isinstance(exc, StoreUnavailableError):
        return 503
    if isinstance(exc, ValidationAppError):
        return 400
    # InvalidPolicyError lands here: a bad policy is a deployment bug
    return 500


def _rate_limit_headers(exc: RateLimitExceededError) -> dict[str, str]:
    if not settings.rate_limit.include_headers:
        return {}
    retry_after = exc.retry_after_seconds if exc.retry_after_seconds is not None else exc.window_seconds
    return {
        "Retry-After": str(retry_after),
        "X-RateLimit-Limit": str(exc.max_count),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(retry_after),
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code, error details and, for
        rate limit rejections, throttling headers.
    """
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceededError):
        headers = _rate_limit_headers(exc)
    elif isinstance(exc, StoreUnavailableError):
        headers = {"Retry-After": "1"}

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message; no stack traces reach the client.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
