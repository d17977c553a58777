"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from coursepath.config import get_settings
from coursepath.database import close_db, get_session, init_db
from coursepath.health.router import router as health_router
from coursepath.middleware import setup_middleware
from coursepath.progress.router import router as progress_router
from coursepath.redis_client import close_redis, init_redis
from coursepath.referrals.router import router as referrals_router
from coursepath.rewards.router import router as rewards_router
from coursepath.rewards.seed import seed_badges

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed badge definitions (idempotent)
    try:
        async for db in get_session():
            await seed_badges(db)
            break
    except SQLAlchemyError:
        logger.warning("badge_seeding_failed", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Coursepath API",
        description="Progress & unlock engine for day-by-day challenge courses",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progress_router)
    app.include_router(rewards_router)
    app.include_router(referrals_router)

    return app


app = create_app()
