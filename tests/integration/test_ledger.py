"""Gamification ledger tests: persistence, serialization, re-rank side effects."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from algoreview.db.models import AnalysisJob, LeaderboardEntry, UserProgress
from algoreview.errors import JobFailed
from conftest import create_job, make_result

pytestmark = pytest.mark.asyncio


async def _progress(factory, user_id: str) -> UserProgress | None:
    async with factory() as db:
        result = await db.execute(select(UserProgress).where(UserProgress.user_id == user_id))
        return result.scalar_one_or_none()


class TestApplyJob:
    async def test_new_user_reference_scenario(self, services, session_factory):
        job_id = await create_job(session_factory, "alice")

        outcome = await services.ledger.apply_job(job_id, "alice", make_result(improvement=80, quality=90))

        assert outcome.score == 655
        assert outcome.experience_awarded == 50
        assert outcome.reranked is True
        progress = await _progress(session_factory, "alice")
        assert (progress.level, progress.experience, progress.experience_to_next_level) == (1, 50, 100)
        assert progress.total_jobs == 1
        assert progress.average_improvement == 80
        assert progress.average_quality == 90
        assert progress.current_streak == 1

        async with session_factory() as db:
            entry = (await db.execute(select(LeaderboardEntry))).scalar_one()
            job = await db.get(AnalysisJob, job_id)
        assert (entry.user_id, entry.score, entry.rank) == ("alice", 655, 1)
        assert job.ledger_applied_at is not None

    async def test_second_apply_is_noop(self, services, session_factory):
        job_id = await create_job(session_factory, "alice")
        await services.ledger.apply_job(job_id, "alice", make_result())

        assert await services.ledger.apply_job(job_id, "alice", make_result()) is None
        assert (await _progress(session_factory, "alice")).total_jobs == 1

    async def test_vanished_job(self, services):
        with pytest.raises(JobFailed):
            await services.ledger.apply_job("no-such-job", "alice", make_result())

    async def test_same_user_completions_serialize(self, services, session_factory):
        job_ids = [await create_job(session_factory, "alice") for _ in range(5)]

        await asyncio.gather(*(services.ledger.apply_job(j, "alice", make_result(improvement=75)) for j in job_ids))

        progress = await _progress(session_factory, "alice")
        assert progress.total_jobs == 5
        # 5 x 50 XP = 250: level 1 (100) and level 2 (150) cleared
        assert (progress.level, progress.experience, progress.experience_to_next_level) == (3, 0, 225)

    async def test_invalidates_stats_and_leaderboard_cache(self, services, session_factory):
        services.cache.put("stats:alice", {"level": 1})
        services.cache.put("leaderboard:all-time:page:1:10", {"entries": [], "total": 0})
        job_id = await create_job(session_factory, "alice")

        await services.ledger.apply_job(job_id, "alice", make_result())

        assert "stats:alice" not in services.cache
        assert "leaderboard:all-time:page:1:10" not in services.cache

    async def test_rerank_failure_keeps_progress(self, services, session_factory):
        services.ranker._recompute = AsyncMock(side_effect=RuntimeError("boom"))
        job_id = await create_job(session_factory, "alice")

        outcome = await services.ledger.apply_job(job_id, "alice", make_result())

        assert outcome.reranked is False
        assert (await _progress(session_factory, "alice")).total_jobs == 1
        assert services.ranker.pending

    async def test_level_up_published(self, services, session_factory, fake_redis):
        job_ids = [await create_job(session_factory, "alice") for _ in range(2)]
        for j in job_ids:
            await services.ledger.apply_job(j, "alice", make_result(improvement=90))

        level_ups = [json.loads(m) for ch, m in fake_redis.published if ch == "pubsub:level_up"]
        assert level_ups == [{"user_id": "alice", "old_level": 1, "new_level": 2}]


class TestGetProgress:
    async def test_unknown_user_gets_initial_snapshot_without_row(self, services, session_factory):
        async with session_factory() as db:
            data = await services.ledger.get_progress(db, "ghost")
        assert (data["level"], data["experience"], data["experience_to_next_level"]) == (1, 0, 100)
        assert data["score"] == 50
        assert await _progress(session_factory, "ghost") is None

    async def test_cached_until_next_completion(self, services, session_factory):
        job_id = await create_job(session_factory, "alice")
        async with session_factory() as db:
            await services.ledger.get_progress(db, "alice")
        assert "stats:alice" in services.cache

        await services.ledger.apply_job(job_id, "alice", make_result())
        async with session_factory() as db:
            data = await services.ledger.get_progress(db, "alice")
        assert data["total_jobs"] == 1

    async def test_read_racing_a_completion_is_not_cached(self, services, session_factory):
        """A snapshot read before a ledger commit must not be cached past that commit."""
        first = await create_job(session_factory, "alice")
        await services.ledger.apply_job(first, "alice", make_result())
        second = await create_job(session_factory, "alice")

        async with session_factory() as db:
            slow_db = PausingSession(db)
            reader = asyncio.create_task(services.ledger.get_progress(slow_db, "alice"))
            await slow_db.read_done.wait()

            await services.ledger.apply_job(second, "alice", make_result())

            slow_db.resume.set()
            stale = await reader
        assert stale["total_jobs"] == 1

        async with session_factory() as db:
            fresh = await services.ledger.get_progress(db, "alice")
        assert fresh["total_jobs"] == 2


class PausingSession:
    """Wraps a session so a read can be suspended after it hits the database.

    The transaction is committed before pausing so the writer is not blocked
    on the SQLite lock.
    """

    def __init__(self, db) -> None:
        self._db = db
        self.read_done = asyncio.Event()
        self.resume = asyncio.Event()

    async def execute(self, *args, **kwargs):
        result = await self._db.execute(*args, **kwargs)
        await self._db.commit()
        self.read_done.set()
        await self.resume.wait()
        return result
