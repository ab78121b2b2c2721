"""Demo routes showing how policies are attached at route registration.

``/v1/demo/ping`` is limited per client address by the policy configured via
APP_DEMO_* settings; ``/v1/demo/open`` declares no policy and is never
counted; ``/v1/demo/reports/daily`` resolves its policy through the
process-wide policy registry; ``/v1/demo/quote`` calls a service function
guarded with the decorator form.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from windowlimit.core.config import settings
from windowlimit.core.rate_limit import enforce_rate_limit, enforce_registered_rate_limit, policy_registry
from windowlimit.services.policy import RateLimitPolicy
from windowlimit.services.quote_service import get_quote

router = APIRouter(tags=["Demo"])

demo_policy = RateLimitPolicy(
    identifier=settings.app.demo_policy_identifier,
    window_seconds=settings.app.demo_window_seconds,
    max_count=settings.app.demo_max_count,
)

# Every report operation shares this default through the registry
policy_registry.register_target(
    f"{__name__}.reports",
    RateLimitPolicy(identifier="reports", window_seconds=60, max_count=10),
)


@router.get(
    "/demo/ping",
    dependencies=[Depends(enforce_rate_limit(demo_policy, operation="ping", target=__name__))],
)
async def ping() -> dict:
    """Rate limited endpoint."""

    return {"message": "pong"}


@router.get(
    "/demo/open",
    dependencies=[Depends(enforce_rate_limit(None, operation="open", target=__name__))],
)
async def open_endpoint() -> dict:
    """Endpoint without a policy; every call passes through."""

    return {"message": "open"}


@router.get("/demo/quote")
async def quote() -> dict:
    """Endpoint whose service call is limited by a decorator."""

    return {"quote": await get_quote()}


@router.get(
    "/demo/reports/daily",
    dependencies=[Depends(enforce_registered_rate_limit(operation="daily", target=f"{__name__}.reports"))],
)
async def daily_report() -> dict:
    """Endpoint limited by the reports default held in the policy registry."""

    return {"report": "daily"}
