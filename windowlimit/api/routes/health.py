from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from windowlimit.core.rate_limit import get_rate_limit_guard

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check() -> JSONResponse:
    """Readiness check: the counter store must answer a ping.

    Guarded routes fail closed while the store is unreachable, so the
    instance reports itself not ready (503) in that state.
    """

    counter = get_rate_limit_guard().counter
    if await counter.ping():
        return JSONResponse({"status": "ok", "store": counter.backend_name})
    return JSONResponse(
        {"status": "unavailable", "store": counter.backend_name},
        status_code=503,
    )
