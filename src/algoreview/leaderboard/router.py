"""Leaderboard endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.auth.dependencies import Caller, get_current_caller
from algoreview.database import get_session
from algoreview.leaderboard.ranker import ALL_TIME
from algoreview.leaderboard.schemas import LeaderboardResponse
from algoreview.services import Services, get_services

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    period: str = Query(ALL_TIME),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> LeaderboardResponse:
    """Ranked page; the caller's own entry is appended when it is off-page."""
    settings = services.settings
    size = min(page_size or settings.leaderboard_default_page_size, settings.leaderboard_max_page_size)
    data = await services.ranker.get_page(db, period, page, size, requesting_user_id=caller.user_id)
    return LeaderboardResponse(period=period, **data)
