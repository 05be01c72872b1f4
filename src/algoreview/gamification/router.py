"""Progress endpoint for the calling user."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.auth.dependencies import Caller, get_current_caller
from algoreview.database import get_session
from algoreview.gamification.schemas import ProgressResponse
from algoreview.services import Services, get_services

router = APIRouter(prefix="/api/v1", tags=["Progress"])


@router.get("/users/me/progress", response_model=ProgressResponse)
async def my_progress(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> ProgressResponse:
    """Level, XP, aggregates and streak, plus all-time rank. Read-only."""
    progress = await services.ledger.get_progress(db, caller.user_id)
    standing = await services.ranker.get_user_rank(db, caller.user_id)
    return ProgressResponse(
        **progress,
        rank=standing["rank"] if standing else None,
        rank_change=standing["rank_change"] if standing else 0,
    )
