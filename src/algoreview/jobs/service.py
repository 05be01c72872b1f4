"""Job store operations behind the jobs API."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.billing import BillingGate
from algoreview.cache.keys import job_status_key
from algoreview.cache.score_cache import ScoreCache
from algoreview.config import Settings
from algoreview.db.models import AnalysisJob, User
from algoreview.errors import InvalidInput, NotFound, QuotaExceeded
from algoreview.jobs.states import QUEUED, TERMINAL_STATUSES

if TYPE_CHECKING:
    from algoreview.jobs.runner import AnalysisRunner

logger = structlog.get_logger()


def validate_submission(title: str, language: str, code: str, settings: Settings) -> tuple[str, str]:
    """Return the trimmed (title, language); raise ``InvalidInput`` otherwise."""
    title = (title or "").strip()
    language = (language or "").strip()
    if not title:
        msg = "Title is required"
        raise InvalidInput(msg)
    if len(title) > settings.max_title_chars:
        msg = f"Title cannot exceed {settings.max_title_chars} characters"
        raise InvalidInput(msg)
    if not language:
        msg = "Language is required"
        raise InvalidInput(msg)
    if len(language) > settings.max_language_chars:
        msg = f"Language cannot exceed {settings.max_language_chars} characters"
        raise InvalidInput(msg)
    if not code or not code.strip():
        msg = "Code is required"
        raise InvalidInput(msg)
    if len(code) > settings.max_code_chars:
        msg = f"Code cannot exceed {settings.max_code_chars} characters"
        raise InvalidInput(msg)
    return title, language


async def ensure_user(db: AsyncSession, user_id: str, display_name: str | None = None) -> User:
    """Upsert the gateway identity; a new display name replaces the old one."""
    user = await db.get(User, user_id)
    if user is None:
        user = User(id=user_id, display_name=display_name)
        db.add(user)
        await db.flush()
    elif display_name and user.display_name != display_name:
        user.display_name = display_name
    return user


async def submit_job(
    db: AsyncSession,
    *,
    runner: AnalysisRunner,
    billing: BillingGate,
    settings: Settings,
    user_id: str,
    title: str,
    language: str,
    code: str,
    display_name: str | None = None,
) -> AnalysisJob:
    """Create a queued job and schedule its analysis. Never waits on the analysis."""
    title, language = validate_submission(title, language, code, settings)

    if not await billing.may_create_job(db, user_id):
        logger.info("job_quota_exceeded", user_id=user_id)
        msg = "Monthly analysis limit reached. Upgrade your plan to continue."
        raise QuotaExceeded(msg)

    await ensure_user(db, user_id, display_name)
    job = AnalysisJob(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=title,
        language=language,
        code=code,
        line_count=len(code.split("\n")),
        status=QUEUED,
        created_at=datetime.now(timezone.utc),
    )
    db.add(job)
    await db.commit()

    runner.schedule(job.id)
    logger.info("job_submitted", job_id=job.id, user_id=user_id, language=language, lines=job.line_count)
    return job


async def _load_owned_job(db: AsyncSession, job_id: str, user_id: str) -> AnalysisJob:
    job = await db.get(AnalysisJob, job_id)
    if job is None or job.user_id != user_id:
        msg = "Job not found"
        raise NotFound(msg)
    return job


def _status_view(job: AnalysisJob) -> dict[str, Any]:
    return {
        "job_id": job.id,
        "user_id": job.user_id,
        "status": job.status,
        "title": job.title,
        "language": job.language,
        "created_at": job.created_at,
        "completed_at": job.completed_at,
        "processing_time_ms": job.processing_time_ms,
        "result": job.result,
    }


async def get_job_status(db: AsyncSession, cache: ScoreCache, job_id: str, user_id: str) -> dict[str, Any]:
    """Poll target. Terminal statuses are immutable, so only those are cached."""
    key = job_status_key(job_id)
    cached = cache.get(key)
    if cached is not None:
        if cached["user_id"] != user_id:
            msg = "Job not found"
            raise NotFound(msg)
        return cached

    job = await _load_owned_job(db, job_id, user_id)
    view = _status_view(job)
    if job.status in TERMINAL_STATUSES:
        cache.put(key, view)
    return view


async def get_job(db: AsyncSession, job_id: str, user_id: str) -> AnalysisJob:
    return await _load_owned_job(db, job_id, user_id)


async def list_recent_jobs(db: AsyncSession, user_id: str, limit: int) -> list[dict[str, Any]]:
    """Newest-first job summaries for a user."""
    result = await db.execute(
        select(AnalysisJob)
        .where(AnalysisJob.user_id == user_id)
        .order_by(AnalysisJob.created_at.desc(), AnalysisJob.id.desc())
        .limit(limit)
    )
    summaries = []
    for job in result.scalars():
        analysis = job.result or {}
        time_complexity = analysis.get("time_complexity") or {}
        summaries.append({
            "id": job.id,
            "title": job.title,
            "language": job.language,
            "status": job.status,
            "complexity_before": time_complexity.get("before"),
            "complexity_after": time_complexity.get("after"),
            "improvement_percentage": analysis.get("improvement_percentage"),
            "line_count": job.line_count,
            "created_at": job.created_at,
        })
    return summaries
