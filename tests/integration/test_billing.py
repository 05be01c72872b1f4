"""Billing gate tests against the job store."""

from datetime import datetime, timezone

import pytest

from algoreview.billing import MonthlyQuotaBillingGate, UnlimitedBillingGate, build_billing_gate
from algoreview.db.models import AnalysisJob
from conftest import create_job

pytestmark = pytest.mark.asyncio


async def _finish(factory, job_id: str, status: str, completed_at: datetime) -> None:
    async with factory() as db:
        job = await db.get(AnalysisJob, job_id)
        job.status = status
        job.completed_at = completed_at
        await db.commit()


class TestMonthlyQuota:
    async def test_counts_completed_jobs_this_month(self, session_factory):
        now = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
        gate = MonthlyQuotaBillingGate(limit=2, clock=lambda: now)

        done = await create_job(session_factory, "alice")
        await _finish(session_factory, done, "completed", datetime(2026, 3, 2, tzinfo=timezone.utc))
        last_month = await create_job(session_factory, "alice")
        await _finish(session_factory, last_month, "completed", datetime(2026, 2, 27, tzinfo=timezone.utc))
        failed = await create_job(session_factory, "alice")
        await _finish(session_factory, failed, "failed", datetime(2026, 3, 3, tzinfo=timezone.utc))
        await create_job(session_factory, "alice", status="queued")

        async with session_factory() as db:
            assert await gate.used_this_month(db, "alice") == 1
            assert await gate.may_create_job(db, "alice") is True

        second = await create_job(session_factory, "alice")
        await _finish(session_factory, second, "completed", datetime(2026, 3, 10, tzinfo=timezone.utc))

        async with session_factory() as db:
            assert await gate.may_create_job(db, "alice") is False
            assert await gate.may_create_job(db, "bob") is True


class TestBuildGate:
    def test_zero_quota_is_unlimited(self, settings):
        assert isinstance(build_billing_gate(settings), UnlimitedBillingGate)

    def test_positive_quota(self, settings):
        gate = build_billing_gate(settings.model_copy(update={"monthly_job_quota": 5}))
        assert isinstance(gate, MonthlyQuotaBillingGate)
        assert gate.limit == 5
