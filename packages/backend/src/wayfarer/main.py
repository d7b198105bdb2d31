"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (logging, Redis, database).
Middleware, CORS, exception handlers, and routers all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wayfarer import __version__
from wayfarer.api import api_router
from wayfarer.api.errors import register_exception_handlers
from wayfarer.cache.redis import close_redis, init_redis
from wayfarer.config import settings
from wayfarer.logging import configure_logging
from wayfarer.middleware.rate_limit import RateLimitMiddleware
from wayfarer.middleware.request_id import RequestIdMiddleware
from wayfarer.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown.
    """
    configure_logging(settings)
    logger.info(
        "wayfarer.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    try:
        await init_redis()
        logger.info("wayfarer.redis_connected")
    except Exception as e:
        # Redis is optional; only rate limiting is lost
        logger.warning("wayfarer.redis_unavailable", error=str(e))

    yield

    logger.info("wayfarer.shutdown")
    await close_redis()

    from wayfarer.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Wayfarer",
        description="Trip planner API — accounts, tokens and row-secured data",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: wayfarer.main:app)
app = create_app()
