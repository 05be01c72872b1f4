"""Pydantic response models for progress endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ProgressResponse(BaseModel):
    level: int
    experience: int
    experience_to_next_level: int
    total_jobs: int
    optimized_jobs: int
    total_improvement: float
    average_improvement: float
    average_quality: float
    current_streak: int
    longest_streak: int
    last_activity_at: datetime | None = None
    score: int
    rank: int | None = None
    rank_change: int = 0
