"""Pydantic request/response models for job endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from algoreview.analysis.schemas import AnalysisResult


class SubmitJobRequest(BaseModel):
    # Length limits are enforced by the service so they surface as 400 invalid_input.
    title: str
    language: str
    code: str


class SubmitJobResponse(BaseModel):
    job_id: str
    status: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    title: str
    language: str
    created_at: datetime
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    result: AnalysisResult | None = None


class JobDetailResponse(JobStatusResponse):
    code: str
    line_count: int
    optimized_code: str | None = None
    model: str | None = None


class JobSummary(BaseModel):
    id: str
    title: str
    language: str
    status: str
    complexity_before: str | None = None
    complexity_after: str | None = None
    improvement_percentage: float | None = None
    line_count: int
    created_at: datetime


class RecentJobsResponse(BaseModel):
    jobs: list[JobSummary]
