"""HTTP middleware for request correlation and rate limit context.

request_id_middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id and total duration into response headers

rate_limit_middleware:
- Resolves the caller identity once per request and stores it in contextvars,
  so guarded functions below the HTTP layer can read it
- Adds X-RateLimit-Limit / X-RateLimit-Remaining headers when a route admitted
  the call under a policy

Usage:
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from windowlimit.adapters.rate_limit.base import AcquireResult
from windowlimit.core.client_identity import (
    clear_caller_identity,
    resolve_caller_identity,
    set_caller_identity,
)
from windowlimit.core.config import settings
from windowlimit.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID is
    generated. The ID is propagated back in the response headers and stored
    in contextvars for log correlation.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware exposing caller identity and quota headers.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response, with X-RateLimit-* headers when the
            route counted the call and RATE_LIMIT_INCLUDE_HEADERS is enabled.
    """

    set_caller_identity(resolve_caller_identity(request))
    try:
        response: Response = await call_next(request)
    finally:
        clear_caller_identity()

    result: AcquireResult | None = getattr(request.state, "rate_limit", None)
    if result is not None and settings.rate_limit.include_headers:
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    return response
