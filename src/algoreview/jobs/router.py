"""Job API endpoints: submit, poll status, detail, recent list."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.auth.dependencies import Caller, get_current_caller
from algoreview.database import get_session
from algoreview.jobs.schemas import (
    JobDetailResponse,
    JobStatusResponse,
    JobSummary,
    RecentJobsResponse,
    SubmitJobRequest,
    SubmitJobResponse,
)
from algoreview.jobs.service import get_job, get_job_status, list_recent_jobs, submit_job
from algoreview.services import Services, get_services

router = APIRouter(prefix="/api/v1", tags=["Jobs"])


@router.post("/jobs", response_model=SubmitJobResponse, status_code=202)
async def submit(
    body: SubmitJobRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> SubmitJobResponse:
    """Queue a snippet for analysis. Returns immediately; poll the status endpoint."""
    job = await submit_job(
        db,
        runner=services.runner,
        billing=services.billing,
        settings=services.settings,
        user_id=caller.user_id,
        display_name=caller.display_name,
        title=body.title,
        language=body.language,
        code=body.code,
    )
    return SubmitJobResponse(job_id=job.id, status=job.status)


@router.get("/jobs/{job_id}/status", response_model=JobStatusResponse)
async def job_status(
    job_id: str,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> JobStatusResponse:
    """Cheap poll target: one cache lookup or one primary-key read."""
    view = await get_job_status(db, services.cache, job_id, caller.user_id)
    return JobStatusResponse(**{k: v for k, v in view.items() if k != "user_id"})


@router.get("/jobs/{job_id}", response_model=JobDetailResponse)
async def job_detail(
    job_id: str,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
) -> JobDetailResponse:
    job = await get_job(db, job_id, caller.user_id)
    return JobDetailResponse(
        job_id=job.id,
        status=job.status,
        title=job.title,
        language=job.language,
        created_at=job.created_at,
        completed_at=job.completed_at,
        processing_time_ms=job.processing_time_ms,
        result=job.result,
        code=job.code,
        line_count=job.line_count,
        optimized_code=job.optimized_code,
        model=job.model,
    )


@router.get("/jobs", response_model=RecentJobsResponse)
async def recent_jobs(
    limit: int | None = Query(None, ge=1),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> RecentJobsResponse:
    """Newest-first summaries of the caller's jobs."""
    settings = services.settings
    limit = min(limit or settings.recent_jobs_default_limit, settings.recent_jobs_max_limit)
    rows = await list_recent_jobs(db, caller.user_id, limit)
    return RecentJobsResponse(jobs=[JobSummary(**row) for row in rows])
