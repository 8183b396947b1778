from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
the lifecycle of the rate limiter's store handle: it is created once here,
shared by every request, and closed on shutdown.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI

from zebra_crossing.adapters.rate_limit.base import AbstractRateLimiter
from zebra_crossing.adapters.rate_limit.factory import create_rate_limiter
from zebra_crossing.api.routes import health_router, limits_router
from zebra_crossing.core.config import settings
from zebra_crossing.core.exception_handlers import setup_exception_handlers
from zebra_crossing.core.logging import configure_logging
from zebra_crossing.core.middleware import request_id_middleware
from zebra_crossing.core.openapi import apply_openapi_customizations
from zebra_crossing.core.rate_limit import ClientKeyResolver, enforce_rate_limit, resolve_client_key

logger = logging.getLogger(__name__)


def create_app(
    *,
    rate_limiter: AbstractRateLimiter | None = None,
    client_key_resolver: ClientKeyResolver = resolve_client_key,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiter: Limiter to use; built from settings when omitted.
        client_key_resolver: Maps a request to the client key that is
            rate limited.
        configure_logs: Install the JSON root logging handler.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.

    Raises:
        InvalidConfigurationError: If the limiter settings are invalid.
    """
    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    limiter = rate_limiter if rate_limiter is not None else create_rate_limiter()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "rate_limit.started",
            extra={
                "limiter": type(limiter).__name__,
                "limit": limiter.options.max_requests,
                "window_ms": limiter.options.window_ms,
            },
        )
        try:
            yield
        finally:
            await limiter.close()
            logger.info("rate_limit.stopped")

    app = FastAPI(
        title="Zebra Crossing",
        description=(
            "Fixed-window rate limiting keyed by client identity. Every /v1 "
            "response carries X-RateLimit-Limit, X-RateLimit-Remaining and "
            "X-RateLimit-Reset; exhausted clients receive 429 Too Many Requests."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.rate_limiter = limiter
    app.state.client_key_resolver = client_key_resolver

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers: everything under /v1 is rate limited, health is not
    app.include_router(limits_router, prefix="/v1", dependencies=[Depends(enforce_rate_limit)])
    app.include_router(health_router)

    # OpenAPI customizations (admin key scheme, tags, rate limit headers)
    apply_openapi_customizations(app)

    return app
