"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI

from algoreview.config import get_settings
from algoreview.database import close_db, create_schema, get_session_factory, init_db
from algoreview.feed.router import router as feed_router
from algoreview.gamification.router import router as progress_router
from algoreview.health.router import router as health_router
from algoreview.jobs.router import router as jobs_router
from algoreview.leaderboard.router import router as leaderboard_router
from algoreview.maintenance import MaintenanceLoop
from algoreview.middleware import setup_middleware
from algoreview.redis_client import close_redis, get_redis, init_redis
from algoreview.services import build_services, close_services, init_services

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.auto_create_schema:
        await create_schema()
    await init_redis(settings.redis_url)

    services = build_services(settings, get_session_factory(), redis=get_redis())
    init_services(services)

    # Pick up jobs a previous process left unfinished
    resumed = await services.runner.resume_pending()

    maintenance = MaintenanceLoop(
        services.cache,
        services.ranker,
        interval=settings.cache_sweep_interval_seconds,
        grace=settings.cache_sweep_grace_seconds,
        session_factory=get_session_factory(),
        notification_retention=timedelta(days=settings.notification_retention_days),
    )
    maintenance.start()
    logger.info("startup_complete", environment=settings.environment, resumed_jobs=resumed)

    yield

    await maintenance.stop()
    await close_services()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="AlgoReview API",
        description="Asynchronous code analysis with XP, levels, streaks, and a global leaderboard",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(jobs_router)
    app.include_router(leaderboard_router)
    app.include_router(progress_router)
    app.include_router(feed_router)

    return app


app = create_app()
