"""Liveness, readiness and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.config import get_settings
from algoreview.database import get_session
from algoreview.redis_client import get_redis
from algoreview.services import Services, get_services

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness: 200 while the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
    services: Services = Depends(get_services),  # noqa: B008
) -> dict[str, object]:
    """Readiness check.

    The job store must answer. Redis only carries rate limits and broadcasts,
    so a Redis outage reports ``degraded`` while jobs keep being accepted.
    """
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as exc:
        checks["redis"] = f"error: {exc}"

    if checks["database"] != "ok":
        status = "unavailable"
    elif checks["redis"] != "ok":
        status = "degraded"
    else:
        status = "ready"

    return {
        "status": status,
        "checks": checks,
        "jobs_in_flight": services.runner.in_flight,
        "deferred_reranks": len(services.ranker.pending),
        "cache": services.cache.stats(),
    }


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
