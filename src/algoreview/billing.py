"""Billing gate consulted once per submission."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.config import Settings
from algoreview.db.models import AnalysisJob
from algoreview.jobs.states import COMPLETED


class BillingGate(Protocol):
    async def may_create_job(self, db: AsyncSession, user_id: str) -> bool: ...


class UnlimitedBillingGate:
    async def may_create_job(self, db: AsyncSession, user_id: str) -> bool:
        return True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MonthlyQuotaBillingGate:
    """Allow ``limit`` completed analyses per UTC calendar month.

    Only completed jobs consume quota; failed ones never do.
    """

    def __init__(self, limit: int, clock: Callable[[], datetime] = _utcnow) -> None:
        self.limit = limit
        self._clock = clock

    async def used_this_month(self, db: AsyncSession, user_id: str) -> int:
        month_start = self._clock().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        result = await db.execute(
            select(func.count())
            .select_from(AnalysisJob)
            .where(
                AnalysisJob.user_id == user_id,
                AnalysisJob.status == COMPLETED,
                AnalysisJob.completed_at >= month_start,
            )
        )
        return result.scalar_one()

    async def may_create_job(self, db: AsyncSession, user_id: str) -> bool:
        return await self.used_this_month(db, user_id) < self.limit


def build_billing_gate(settings: Settings) -> BillingGate:
    if settings.monthly_job_quota > 0:
        return MonthlyQuotaBillingGate(settings.monthly_job_quota)
    return UnlimitedBillingGate()
