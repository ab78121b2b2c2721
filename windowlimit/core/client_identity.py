"""Caller identity resolution for rate limiting.

The caller identity is the client network address, taking reverse-proxy
headers into account when they are trusted. Resolution never raises: when no
address can be determined the constant ``UNKNOWN_CALLER`` is used, so every
unresolvable caller shares one bucket instead of bypassing the limiter.

The resolved identity is also kept in a context variable for the duration of
the request so code below the HTTP layer (e.g. functions decorated with
``RateLimitGuard.limit``) can read it.
"""

from __future__ import annotations

from contextvars import ContextVar

from fastapi import Request

from windowlimit.core.config import settings

UNKNOWN_CALLER = "unknown"

# Checked in order; the first usable value wins.
PROXY_HEADERS: tuple[str, ...] = (
    "x-forwarded-for",
    "x-real-ip",
    "proxy-client-ip",
    "wl-proxy-client-ip",
)

_caller_identity_var: ContextVar[str | None] = ContextVar("caller_identity", default=None)


def set_caller_identity(identity: str | None) -> None:
    """Store the current caller identity in a context variable."""

    _caller_identity_var.set(identity)


def get_caller_identity() -> str:
    """Fetch the current caller identity, or ``UNKNOWN_CALLER`` outside a request."""

    return _caller_identity_var.get() or UNKNOWN_CALLER


def clear_caller_identity() -> None:
    """Clear any stored caller identity from context."""

    _caller_identity_var.set(None)


def _first_usable(header_value: str | None) -> str | None:
    """Return the first non-empty, non-"unknown" entry of a comma list."""

    if not header_value:
        return None
    for candidate in header_value.split(","):
        candidate = candidate.strip()
        if candidate and candidate.lower() != UNKNOWN_CALLER:
            return candidate
    return None


def resolve_caller_identity(request: Request, *, trust_proxy_headers: bool | None = None) -> str:
    """Resolve the caller identity for ``request``.

    Args:
        request: Incoming request.
        trust_proxy_headers: Override for RATE_LIMIT_TRUST_PROXY_HEADERS.

    Returns:
        The client address, or ``UNKNOWN_CALLER`` if it cannot be determined.
    """

    trust = settings.rate_limit.trust_proxy_headers if trust_proxy_headers is None else trust_proxy_headers

    if trust:
        for header in PROXY_HEADERS:
            identity = _first_usable(request.headers.get(header))
            if identity:
                return identity

    client = request.client
    if client is not None and client.host:
        return client.host
    return UNKNOWN_CALLER
