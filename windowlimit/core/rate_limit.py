"""Rate limiting dependency for FastAPI routes.

This module wires the rate limit guard into the HTTP layer.

Design goals:
- Explicit composition: each route declares its policy at registration time
  via ``Depends(enforce_rate_limit(policy, ...))``; no policy means no limit.
- Swap-friendly: the counter store is chosen by settings (Redis or memory)
  behind an abstract interface.
- Safe defaults: fail closed when the store is unreachable unless
  RATE_LIMIT_FAIL_OPEN is set.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from fastapi import Request

from windowlimit.adapters.rate_limit.factory import create_window_counter
from windowlimit.core.client_identity import resolve_caller_identity
from windowlimit.core.config import settings
from windowlimit.core.errors import InvalidPolicyError, ValidationAppError
from windowlimit.services.policy import PolicyRegistry, RateLimitPolicy
from windowlimit.services.rate_limit_guard import RateLimitGuard, limit_with

logger = logging.getLogger(__name__)


_guard: RateLimitGuard | None = None

# Policies declared away from the route, resolved per request
policy_registry = PolicyRegistry()


def get_rate_limit_guard() -> RateLimitGuard:
    """Return the process-wide rate limit guard.

    The guard is stateless, but its counter store owns a connection pool, so
    one instance is cached in-module and reused across requests.

    Returns:
        RateLimitGuard: Guard bound to the configured counter store.
    """

    global _guard

    if _guard is None:
        _guard = RateLimitGuard(
            create_window_counter(),
            key_prefix=settings.rate_limit.key_prefix,
            fail_open=settings.rate_limit.fail_open,
            enabled=settings.rate_limit.enabled,
        )
        logger.info(
            "rate_limit.guard_created",
            extra={
                "backend": _guard.counter.backend_name,
                "fail_open": _guard.fail_open,
                "enabled": _guard.enabled,
            },
        )

    return _guard


def set_rate_limit_guard(guard: RateLimitGuard | None) -> None:
    """Replace the process-wide guard (None rebuilds it from settings on next use)."""

    global _guard
    _guard = guard


async def close_rate_limit_guard() -> None:
    """Close the counter store of the process-wide guard, if one was built."""

    global _guard

    if _guard is not None:
        await _guard.counter.close()
        _guard = None


def enforce_rate_limit(
    policy: RateLimitPolicy | None,
    *,
    operation: str,
    target: str,
) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing ``policy`` on one route.

    The policy is validated here, when the route is registered, so a malformed
    policy fails application startup instead of a request.

    Usage:
        @router.get(
            "/orders",
            dependencies=[Depends(enforce_rate_limit(policy, operation="list_orders", target=__name__))],
        )

    Args:
        policy: Policy to enforce, or None for an unlimited route.
        operation: Operation name used in the counter key.
        target: Identity of the module owning the route.

    Returns:
        Async dependency raising RateLimitExceededError (429) or
        StoreUnavailableError (503) when the call must not proceed.

    Raises:
        InvalidPolicyError: If ``policy`` is not a RateLimitPolicy.
        ValidationAppError: If ``operation`` is empty.
    """

    if policy is not None and not isinstance(policy, RateLimitPolicy):
        raise InvalidPolicyError(f"expected RateLimitPolicy, got {type(policy).__name__}")
    if not operation:
        raise ValidationAppError(
            code="invalid_operation_name",
            message="operation must be a non-empty string",
            details={"field": "operation"},
        )

    async def _dependency(request: Request) -> None:
        guard = get_rate_limit_guard()
        result = await guard.admit(
            policy=policy,
            target=target,
            operation=operation,
            caller_identity=resolve_caller_identity(request),
        )
        if result is not None:
            # Read by rate_limit_middleware to decorate the response
            request.state.rate_limit = result

    return _dependency


def enforce_registered_rate_limit(
    *,
    operation: str,
    target: str,
    registry: PolicyRegistry | None = None,
) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the policy ``registry`` holds.

    The policy is looked up on every request: the operation policy first,
    then the target default, else the route is unlimited. Defaults to the
    process-wide ``policy_registry``.

    Usage:
        policy_registry.register_target(__name__, RateLimitPolicy(window_seconds=60, max_count=100))

        @router.get(
            "/reports",
            dependencies=[Depends(enforce_registered_rate_limit(operation="reports", target=__name__))],
        )

    Raises:
        ValidationAppError: If ``operation`` is empty.
    """

    if not operation:
        raise ValidationAppError(
            code="invalid_operation_name",
            message="operation must be a non-empty string",
            details={"field": "operation"},
        )
    source = registry if registry is not None else policy_registry

    async def _dependency(request: Request) -> None:
        result = await get_rate_limit_guard().admit(
            policy=source.lookup(target, operation),
            target=target,
            operation=operation,
            caller_identity=resolve_caller_identity(request),
        )
        if result is not None:
            request.state.rate_limit = result

    return _dependency


def rate_limited(policy: RateLimitPolicy) -> Callable[[Callable[..., Any]], Callable[..., Awaitable[Any]]]:
    """Decorator guarding a service function with the process-wide guard.

    The caller identity comes from the request context set by
    ``rate_limit_middleware``; outside a request every call shares the
    ``unknown`` caller bucket.

    Usage:
        @rate_limited(RateLimitPolicy(window_seconds=60, max_count=3, identifier="sms"))
        async def send_verification_sms(phone: str) -> None: ...
    """

    return limit_with(get_rate_limit_guard, policy)
