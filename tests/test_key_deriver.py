"""Tests for counter key derivation."""

import functools
import itertools

import pytest

from windowlimit.core.errors import ValidationAppError
from windowlimit.services.key_deriver import derive_key, describe_operation, hash_key


class Orders:
    def create(self) -> None: ...

    @classmethod
    def bulk(cls) -> None: ...


def list_orders() -> None: ...


def test_same_inputs_give_same_key() -> None:
    key1 = derive_key("10.0.0.1", "shop.api.Orders", "create", "burst")
    key2 = derive_key("10.0.0.1", "shop.api.Orders", "create", "burst")

    assert key1 == key2


def test_key_layout_is_length_prefixed() -> None:
    key = derive_key("10.0.0.1", "svc", "get", "")

    assert key == "rate.limit:8:10.0.0.1|3:svc|3:get|0:"


def test_custom_prefix() -> None:
    key = derive_key("a", "b", "c", "d", prefix="rl:")

    assert key.startswith("rl:")
    assert not key.startswith("rate.limit:")


def test_separator_inside_components_does_not_collide() -> None:
    # Naive "|".join would render both tuples as "a|b|c|d"
    key1 = derive_key("a|b", "c", "d", "")
    key2 = derive_key("a", "b|c", "d", "")
    key3 = derive_key("1:a", "b", "op", "")
    key4 = derive_key("1", "a|1:b", "op", "")

    assert key1 != key2
    assert key3 != key4


def test_policy_identifier_separates_limits_on_one_operation() -> None:
    burst = derive_key("10.0.0.1", "svc", "send", "burst")
    daily = derive_key("10.0.0.1", "svc", "send", "daily")

    assert burst != daily


def test_thousand_distinct_pairs_give_distinct_keys() -> None:
    callers = [f"10.0.{i // 256}.{i % 256}" for i in range(40)]
    operations = [f"op{i}" for i in range(25)]
    pairs = list(itertools.product(callers, operations))
    assert len(pairs) == 1000

    keys = {derive_key(caller, "svc", op, "") for caller, op in pairs}

    assert len(keys) == 1000


def test_empty_operation_name_rejected() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        derive_key("10.0.0.1", "svc", "", "")

    assert exc_info.value.code == "invalid_operation_name"


def test_non_string_component_rejected() -> None:
    with pytest.raises(ValidationAppError):
        derive_key(None, "svc", "op", "")  # type: ignore[arg-type]


def test_empty_caller_and_target_are_allowed() -> None:
    assert derive_key("", "", "op", "") == "rate.limit:0:|0:|2:op|0:"


def test_hash_key_is_short_and_stable() -> None:
    key = derive_key("10.0.0.1", "svc", "op", "")

    assert hash_key(key) == hash_key(key)
    assert len(hash_key(key)) == 16
    assert "10.0.0.1" not in hash_key(key)


def test_describe_module_function() -> None:
    assert describe_operation(list_orders) == (__name__, "list_orders")


def test_describe_method_uses_owning_class() -> None:
    assert describe_operation(Orders.create) == (f"{__name__}.Orders", "create")
    assert describe_operation(Orders().create) == (f"{__name__}.Orders", "create")
    assert describe_operation(Orders.bulk) == (f"{__name__}.Orders", "bulk")


def test_describe_partial_unwraps_to_function() -> None:
    assert describe_operation(functools.partial(list_orders)) == (__name__, "list_orders")


def test_describe_nested_function_drops_locals_marker() -> None:
    def inner() -> None: ...

    target, name = describe_operation(inner)

    assert name == "inner"
    assert "<locals>" not in target
    assert target.startswith(__name__)
