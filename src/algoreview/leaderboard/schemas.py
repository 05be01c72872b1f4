"""Pydantic response models for the leaderboard."""

from __future__ import annotations

from pydantic import BaseModel


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    display_name: str
    score: int
    previous_rank: int
    rank_change: int
    is_current_user: bool = False


class PaginationResponse(BaseModel):
    page: int
    page_size: int
    total: int
    has_more: bool


class LeaderboardResponse(BaseModel):
    period: str
    entries: list[LeaderboardEntryResponse]
    pagination: PaginationResponse
