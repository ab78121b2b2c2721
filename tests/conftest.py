"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It points the settings at the in-memory counter store so no Redis server is
needed, and gives every test a fresh process-wide guard.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_FAIL_OPEN", "false")
os.environ.setdefault("RATE_LIMIT_TRUST_PROXY_HEADERS", "true")
os.environ.setdefault("APP_DEMO_MAX_COUNT", "5")
os.environ.setdefault("APP_DEMO_WINDOW_SECONDS", "10")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from windowlimit.adapters.rate_limit.in_memory import InMemoryWindowCounter
from windowlimit.core.rate_limit import set_rate_limit_guard
from windowlimit.services.rate_limit_guard import RateLimitGuard


class FakeClock:
    """Deterministic clock used to test window expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def counter(clock: FakeClock) -> InMemoryWindowCounter:
    return InMemoryWindowCounter(clock=clock)


@pytest.fixture(autouse=True)
def process_guard():
    """Install a fresh in-memory guard as the process-wide guard."""

    guard = RateLimitGuard(InMemoryWindowCounter())
    set_rate_limit_guard(guard)
    yield guard
    set_rate_limit_guard(None)
