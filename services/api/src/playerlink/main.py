"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from playerlink.config import get_settings
from playerlink.database import close_db, init_db
from playerlink.devices.router import router as devices_router
from playerlink.health.router import router as health_router
from playerlink.middleware import setup_middleware
from playerlink.redis_client import close_redis, get_redis, init_redis, redis_enabled
from playerlink.sessions.router import router as sessions_router
from playerlink.transfer.token_store import configure_token_store
from playerlink.verification.router import router as verification_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    backend = settings.token_cache_backend.lower()
    configure_token_store(backend, client=get_redis() if redis_enabled() else None)
    logger.info("startup_complete", environment=settings.environment, token_cache=backend)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Playerlink API",
        description="Anonymous device identity, account merge and single-active-session login",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(devices_router)
    app.include_router(sessions_router)
    app.include_router(verification_router)

    return app


app = create_app()
