"""Counter key derivation.

Keys identify one (caller, target, operation, policy) tuple. Each component is
length-prefixed, so no choice of component values can make two distinct tuples
render to the same key, whatever separators the values themselves contain.
"""

from __future__ import annotations

import functools
import hashlib
from typing import Any, Callable

from windowlimit.core.errors import ValidationAppError

DEFAULT_KEY_PREFIX = "rate.limit:"


def _encode_component(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationAppError(
            code="invalid_key_component",
            message=f"{name} must be a string",
            details={"field": name},
        )
    return f"{len(value)}:{value}"


def derive_key(
    caller_identity: str,
    target_identity: str,
    operation_name: str,
    policy_identifier: str,
    *,
    prefix: str = DEFAULT_KEY_PREFIX,
) -> str:
    """Build the counter key for one guarded call.

    Args:
        caller_identity: Who is calling (typically the client network address).
        target_identity: Module/class owning the operation.
        operation_name: The specific operation.
        policy_identifier: Policy name, may be empty.
        prefix: Namespace prepended to the key.

    Returns:
        A deterministic key such as ``rate.limit:9:127.0.0.1|7:app.api|4:ping|4:demo``.

    Raises:
        ValidationAppError: If ``operation_name`` is empty or a component is not a string.

    Examples:
        >>> derive_key("10.0.0.1", "svc", "get", "")
        'rate.limit:8:10.0.0.1|3:svc|3:get|0:'
    """
    if isinstance(operation_name, str) and not operation_name:
        raise ValidationAppError(
            code="invalid_operation_name",
            message="operation_name must be a non-empty string",
            details={"field": "operation_name"},
        )

    parts = (
        _encode_component("caller_identity", caller_identity),
        _encode_component("target_identity", target_identity),
        _encode_component("operation_name", operation_name),
        _encode_component("policy_identifier", policy_identifier),
    )
    return prefix + "|".join(parts)


def hash_key(key: str) -> str:
    """Hash a counter key for logging without exposing caller addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def describe_operation(func: Callable[..., Any]) -> tuple[str, str]:
    """Return ``(target_identity, operation_name)`` for a Python callable.

    The target is the defining module plus the owning class, if any, taken
    from ``__qualname__``; the operation is the function's own name. A method
    ``Orders.create`` defined in ``shop.api`` yields ``("shop.api.Orders", "create")``.
    """
    while isinstance(func, functools.partial):
        func = func.func
    func = getattr(func, "__func__", func)

    module = getattr(func, "__module__", None) or "<unknown>"
    qualname = getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)
    owner, _, name = qualname.rpartition(".")
    owner = owner.replace(".<locals>", "")
    target = f"{module}.{owner}" if owner else module
    return target, name
