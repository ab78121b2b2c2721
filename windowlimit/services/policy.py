"""Rate limit policies and the explicit policy lookup map.

A policy is declared once, when a route or operation is registered, and is
validated right there so a malformed limit fails the application at setup
rather than on the first request.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from windowlimit.core.errors import InvalidPolicyError

logger = logging.getLogger(__name__)


def _require_positive_int(value: object, field: str) -> None:
    # bool is an int subclass; True would silently mean "1"
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPolicyError(f"{field} must be an integer", field=field)
    if value < 1:
        raise InvalidPolicyError(f"{field} must be >= 1", field=field)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Immutable description of a fixed-window limit.

    Attributes:
        identifier: Logical name, lets one operation carry several independent
            limits (may be empty).
        window_seconds: Window lifetime, refreshed by every admitted call.
        max_count: Maximum admitted calls per window.

    Raises:
        InvalidPolicyError: If the window or the count is not a positive integer.
    """

    window_seconds: int
    max_count: int
    identifier: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.identifier, str):
            raise InvalidPolicyError("identifier must be a string", field="identifier")
        _require_positive_int(self.window_seconds, "window_seconds")
        _require_positive_int(self.max_count, "max_count")


class PolicyRegistry:
    """Map from (target, operation) to the policy guarding it.

    A target-level policy acts as the default for every operation of that
    target that has no policy of its own. Routes read it per request through
    ``enforce_registered_rate_limit``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operation_policies: dict[tuple[str, str], RateLimitPolicy] = {}
        self._target_policies: dict[str, RateLimitPolicy] = {}

    @staticmethod
    def _check(policy: object) -> RateLimitPolicy:
        if not isinstance(policy, RateLimitPolicy):
            raise InvalidPolicyError(f"expected RateLimitPolicy, got {type(policy).__name__}")
        return policy

    def register(self, target: str, operation: str, policy: RateLimitPolicy) -> None:
        """Attach ``policy`` to one operation of ``target``.

        Raises:
            InvalidPolicyError: If ``policy`` is not a RateLimitPolicy or the
                operation name is empty.
        """
        if not operation:
            raise InvalidPolicyError("operation must be a non-empty string", field="operation")
        policy = self._check(policy)
        with self._lock:
            self._operation_policies[(target, operation)] = policy
        logger.debug(
            "rate_limit.policy_registered",
            extra={
                "target": target,
                "operation": operation,
                "max_count": policy.max_count,
                "window_s": policy.window_seconds,
            },
        )

    def register_target(self, target: str, policy: RateLimitPolicy) -> None:
        """Attach a default policy to every operation of ``target``."""
        policy = self._check(policy)
        with self._lock:
            self._target_policies[target] = policy

    def lookup(self, target: str, operation: str) -> RateLimitPolicy | None:
        """Return the operation policy, else the target default, else None."""
        with self._lock:
            policy = self._operation_policies.get((target, operation))
            if policy is None:
                policy = self._target_policies.get(target)
            return policy

    def __len__(self) -> int:
        with self._lock:
            return len(self._operation_policies) + len(self._target_policies)
