"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers,
counter store lifecycle) so tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from windowlimit.api.routes import demo_router, health_router
from windowlimit.core.config import settings
from windowlimit.core.exception_handlers import setup_exception_handlers
from windowlimit.core.logging import configure_logging
from windowlimit.core.middleware import rate_limit_middleware, request_id_middleware
from windowlimit.core.openapi import apply_openapi_customizations
from windowlimit.core.rate_limit import close_rate_limit_guard


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Release the counter store's connection pool on shutdown
    try:
        yield
    finally:
        await close_rate_limit_guard()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="windowlimit",
        description=(
            "Distributed fixed-window rate limiter. Guarded routes share "
            "per-caller counters through Redis and answer 429 when over quota, "
            "503 when the counter store is unreachable."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    # Middleware (last registered runs first)
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(demo_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
