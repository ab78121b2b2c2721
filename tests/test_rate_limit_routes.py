"""Integration tests for rate limited routes.

The process-wide guard is replaced per test (see conftest.py), so each test
starts with empty counters.
"""

import pytest
from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient

from windowlimit.adapters.rate_limit.base import AbstractWindowCounter, AcquireResult
from windowlimit.core.app_factory import create_app
from windowlimit.core.errors import InvalidPolicyError, StoreUnavailableError, ValidationAppError
from windowlimit.core.rate_limit import enforce_rate_limit, enforce_registered_rate_limit, set_rate_limit_guard
from windowlimit.services.policy import PolicyRegistry, RateLimitPolicy
from windowlimit.services.rate_limit_guard import RateLimitGuard

POLICY = RateLimitPolicy(window_seconds=10, max_count=5)


class DownCounter(AbstractWindowCounter):
    backend_name = "down"

    async def try_acquire(self, key: str, max_count: int, window_seconds: int) -> AcquireResult:
        raise StoreUnavailableError("Rate limit store is unavailable", backend=self.backend_name)

    async def ping(self) -> bool:
        return False


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


def test_demo_route_admits_up_to_limit_then_429(client: TestClient) -> None:
    for expected_remaining in (4, 3, 2, 1, 0):
        resp = client.get("/v1/demo/ping")
        assert resp.status_code == 200
        assert resp.json() == {"message": "pong"}
        assert resp.headers["X-RateLimit-Limit"] == "5"
        assert resp.headers["X-RateLimit-Remaining"] == str(expected_remaining)

    resp = client.get("/v1/demo/ping")

    assert resp.status_code == 429
    body = resp.json()
    assert body["error"]["code"] == "rate_limit_exceeded"
    assert body["error"]["details"]["limit"] == 5
    assert body["error"]["details"]["count"] == 5
    assert "request_id" in body["error"]
    assert int(resp.headers["Retry-After"]) > 0
    assert resp.headers["X-RateLimit-Remaining"] == "0"


def test_limits_are_per_client_address(client: TestClient) -> None:
    for _ in range(5):
        assert client.get("/v1/demo/ping", headers={"X-Forwarded-For": "203.0.113.1"}).status_code == 200
    assert client.get("/v1/demo/ping", headers={"X-Forwarded-For": "203.0.113.1"}).status_code == 429

    assert client.get("/v1/demo/ping", headers={"X-Forwarded-For": "203.0.113.2"}).status_code == 200


def test_route_without_policy_is_never_limited(client: TestClient) -> None:
    set_rate_limit_guard(RateLimitGuard(DownCounter()))

    for _ in range(20):
        resp = client.get("/v1/demo/open")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers


def test_store_outage_returns_503_and_skips_handler() -> None:
    calls = []
    router = APIRouter()

    @router.get(
        "/guarded",
        dependencies=[Depends(enforce_rate_limit(POLICY, operation="guarded", target=__name__))],
    )
    async def guarded() -> dict:
        calls.append(1)
        return {"ok": True}

    app = create_app()
    app.include_router(router)
    set_rate_limit_guard(RateLimitGuard(DownCounter()))

    resp = TestClient(app).get("/guarded")

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "store_unavailable"
    assert calls == []


def test_fail_open_guard_serves_during_outage(client: TestClient) -> None:
    set_rate_limit_guard(RateLimitGuard(DownCounter(), fail_open=True))

    resp = client.get("/v1/demo/ping")

    assert resp.status_code == 200
    assert "X-RateLimit-Limit" not in resp.headers


def test_decorated_service_function_is_limited_per_caller(client: TestClient) -> None:
    headers = {"X-Forwarded-For": "198.51.100.5"}
    for _ in range(3):
        assert client.get("/v1/demo/quote", headers=headers).status_code == 200

    resp = client.get("/v1/demo/quote", headers=headers)

    assert resp.status_code == 429
    assert client.get("/v1/demo/quote", headers={"X-Forwarded-For": "198.51.100.6"}).status_code == 200


def test_registry_default_limits_report_route(client: TestClient) -> None:
    for _ in range(10):
        assert client.get("/v1/demo/reports/daily").status_code == 200

    resp = client.get("/v1/demo/reports/daily")

    assert resp.status_code == 429
    assert resp.json()["error"]["details"]["limit"] == 10


def test_registered_policy_is_resolved_per_request() -> None:
    registry = PolicyRegistry()
    router = APIRouter()

    @router.get(
        "/export",
        dependencies=[Depends(enforce_registered_rate_limit(operation="export", target="tests.exports", registry=registry))],
    )
    async def export() -> dict:
        return {"ok": True}

    app = create_app()
    app.include_router(router)
    client = TestClient(app)

    # Nothing registered yet: unlimited
    for _ in range(5):
        assert client.get("/export").status_code == 200

    registry.register_target("tests.exports", RateLimitPolicy(window_seconds=60, max_count=10))
    registry.register("tests.exports", "export", RateLimitPolicy(window_seconds=60, max_count=2))

    assert client.get("/export").status_code == 200
    assert client.get("/export").headers["X-RateLimit-Limit"] == "2"
    assert client.get("/export").status_code == 429


def test_registered_route_requires_operation_name() -> None:
    with pytest.raises(ValidationAppError):
        enforce_registered_rate_limit(operation="", target=__name__)


def test_readiness_reflects_store_health(client: TestClient) -> None:
    ready = client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json() == {"status": "ok", "store": "memory"}

    set_rate_limit_guard(RateLimitGuard(DownCounter()))
    not_ready = client.get("/health/ready")
    assert not_ready.status_code == 503


def test_invalid_policy_fails_at_route_registration() -> None:
    with pytest.raises(InvalidPolicyError):
        enforce_rate_limit({"max_count": 5}, operation="x", target=__name__)  # type: ignore[arg-type]

    with pytest.raises(ValidationAppError):
        enforce_rate_limit(None, operation="", target=__name__)


def test_openapi_documents_throttling_responses() -> None:
    schema = create_app().openapi()

    responses = schema["paths"]["/v1/demo/ping"]["get"]["responses"]
    assert "429" in responses
    assert "503" in responses
    assert "429" not in schema["paths"]["/health"]["get"]["responses"]
