"""Guard that enforces a rate limit policy around an operation invocation.

The guard is stateless: every decision is one ``try_acquire`` against the
shared counter store, so any number of guards in any number of processes agree
as long as they share the store.

Decision per call:
- no policy (or limiting disabled) -> run the operation unchanged
- admitted -> run the operation once and return its result
- rejected -> raise RateLimitExceededError, the operation is not run
- store unavailable -> raise StoreUnavailableError (fail closed), or run the
  operation when the guard was built with ``fail_open=True``
"""

from __future__ import annotations

import functools
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from windowlimit.adapters.rate_limit.base import AbstractWindowCounter, AcquireResult
from windowlimit.core.client_identity import get_caller_identity
from windowlimit.core.errors import InvalidPolicyError, RateLimitExceededError, StoreUnavailableError
from windowlimit.services.key_deriver import DEFAULT_KEY_PREFIX, derive_key, describe_operation, hash_key
from windowlimit.services.policy import RateLimitPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Invocation(Generic[T]):
    """A pending call of a protected operation.

    Attributes:
        target: Identity of the module/class owning the operation.
        name: Operation name.
        call: Zero-argument callable performing the operation; may return an
            awaitable.
    """

    target: str
    name: str
    call: Callable[[], T | Awaitable[T]]

    @classmethod
    def of(cls, func: Callable[..., Any], *args: Any, **kwargs: Any) -> "Invocation[Any]":
        """Describe ``func(*args, **kwargs)`` without calling it."""
        target, name = describe_operation(func)
        return cls(target=target, name=name, call=functools.partial(func, *args, **kwargs))


async def _run(invocation: Invocation[T]) -> T:
    result = invocation.call()
    if inspect.isawaitable(result):
        return await result
    return result


class RateLimitGuard:
    """Admit or reject guarded calls against a shared window counter."""

    def __init__(
        self,
        counter: AbstractWindowCounter,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        fail_open: bool = False,
        enabled: bool = True,
    ) -> None:
        """Initialize the guard.

        Args:
            counter: Counter store executing the atomic check-and-increment.
            key_prefix: Namespace prepended to every counter key.
            fail_open: Admit calls when the store is unavailable.
            enabled: When False every call passes through without counting.
        """
        self.counter = counter
        self.key_prefix = key_prefix
        self.fail_open = fail_open
        self.enabled = enabled

    async def admit(
        self,
        *,
        policy: RateLimitPolicy | None,
        target: str,
        operation: str,
        caller_identity: str,
    ) -> AcquireResult | None:
        """Count one call and decide whether it may proceed.

        Returns:
            The AcquireResult when the call was counted and admitted, or None
            when no counting happened (no policy, disabled, or fail-open).

        Raises:
            RateLimitExceededError: If the caller is over quota.
            StoreUnavailableError: If the store failed and the guard fails closed.
        """
        if policy is None or not self.enabled:
            return None

        key = derive_key(
            caller_identity,
            target,
            operation,
            policy.identifier,
            prefix=self.key_prefix,
        )
        key_hash = hash_key(key)

        try:
            result = await self.counter.try_acquire(key, policy.max_count, policy.window_seconds)
        except StoreUnavailableError:
            if not self.fail_open:
                logger.error(
                    "rate_limit.store_unavailable",
                    extra={
                        "key_hash": key_hash,
                        "operation": operation,
                        "backend": self.counter.backend_name,
                        "fail_open": False,
                    },
                )
                raise
            logger.warning(
                "rate_limit.fail_open",
                extra={
                    "key_hash": key_hash,
                    "operation": operation,
                    "backend": self.counter.backend_name,
                },
            )
            return None

        if result.admitted:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "key_hash": key_hash,
                    "operation": operation,
                    "limit": result.limit,
                    "count": result.count,
                    "window_s": policy.window_seconds,
                },
            )
            return result

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "key_hash": key_hash,
                "operation": operation,
                "limit": result.limit,
                "count": result.count,
                "window_s": policy.window_seconds,
                "retry_after_s": result.retry_after_seconds,
            },
        )
        raise RateLimitExceededError(
            key=key,
            max_count=policy.max_count,
            window_seconds=policy.window_seconds,
            count_after=result.count,
            retry_after_seconds=result.retry_after_seconds,
        )

    async def guard(
        self,
        invocation: Invocation[T],
        policy: RateLimitPolicy | None,
        caller_identity: str,
    ) -> T:
        """Run ``invocation`` if ``policy`` admits it for ``caller_identity``.

        The operation runs at most once, and only after admission.
        """
        await self.admit(
            policy=policy,
            target=invocation.target,
            operation=invocation.name,
            caller_identity=caller_identity,
        )
        return await _run(invocation)

    def limit(
        self,
        policy: RateLimitPolicy,
        *,
        caller_identity: Callable[[], str] = get_caller_identity,
    ) -> Callable[[Callable[..., Any]], Callable[..., Awaitable[Any]]]:
        """Decorator guarding a function with ``policy`` through this guard.

        Usage:
            @guard.limit(RateLimitPolicy(window_seconds=10, max_count=5))
            async def send_sms(phone: str) -> None: ...
        """
        return limit_with(lambda: self, policy, caller_identity=caller_identity)


def limit_with(
    guard_provider: Callable[[], RateLimitGuard],
    policy: RateLimitPolicy,
    *,
    caller_identity: Callable[[], str] = get_caller_identity,
) -> Callable[[Callable[..., Any]], Callable[..., Awaitable[Any]]]:
    """Build a decorator guarding a function with ``policy``.

    The decorated function becomes a coroutine function. The guard and the
    caller identity are looked up on every call, so the decorator can be
    applied at import time, before the process-wide guard exists. By default
    the identity is the request-scoped value set by the rate limit middleware.

    Raises:
        InvalidPolicyError: At decoration time, if ``policy`` is not a RateLimitPolicy.
    """
    if not isinstance(policy, RateLimitPolicy):
        raise InvalidPolicyError(f"expected RateLimitPolicy, got {type(policy).__name__}")

    def decorator(func: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
        target, name = describe_operation(func)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            invocation = Invocation(target=target, name=name, call=functools.partial(func, *args, **kwargs))
            return await guard_provider().guard(invocation, policy, caller_identity())

        return wrapper

    return decorator
