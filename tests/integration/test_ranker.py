"""Leaderboard ranker tests against the database."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from algoreview.db.models import LeaderboardEntry
from algoreview.errors import InvalidInput
from algoreview.leaderboard.ranker import ALL_TIME
from conftest import create_user

pytestmark = pytest.mark.asyncio


async def _ranks(factory) -> dict[str, tuple[int, int, int]]:
    async with factory() as db:
        result = await db.execute(select(LeaderboardEntry).where(LeaderboardEntry.period == ALL_TIME))
        return {e.user_id: (e.rank, e.previous_rank, e.rank_change) for e in result.scalars()}


class TestRecordScore:
    async def test_first_entrant_is_rank_one(self, services, session_factory):
        await create_user(session_factory, "alice")
        assert await services.ranker.record_score("alice", 655)
        assert await _ranks(session_factory) == {"alice": (1, 0, 0)}

    async def test_overtake_tracks_rank_change(self, services, session_factory):
        for uid in ("a", "b", "c"):
            await create_user(session_factory, uid)
        ranker = services.ranker
        await ranker.record_score("a", 300)
        await ranker.record_score("b", 200)
        await ranker.record_score("c", 100)

        await ranker.record_score("c", 400)

        ranks = await _ranks(session_factory)
        assert ranks["c"] == (1, 3, 2)
        assert ranks["a"] == (2, 1, -1)
        assert ranks["b"] == (3, 2, -1)

    async def test_tie_broken_by_creation_order(self, services, session_factory):
        for uid in ("first", "second", "third"):
            await create_user(session_factory, uid)
            await services.ranker.record_score(uid, 500)
        ranks = await _ranks(session_factory)
        assert [ranks[u][0] for u in ("first", "second", "third")] == [1, 2, 3]

    async def test_unchanged_rescore_is_idempotent(self, services, session_factory):
        for uid, score in (("a", 10), ("b", 30), ("c", 20)):
            await create_user(session_factory, uid)
            await services.ranker.record_score(uid, score)
        await services.ranker.record_score("a", 10)
        before = await _ranks(session_factory)

        await services.ranker.record_score("a", 10)
        after = await _ranks(session_factory)

        assert {u: r[0] for u, r in after.items()} == {u: r[0] for u, r in before.items()}
        assert all(change == 0 for _, _, change in after.values())

    async def test_concurrent_updates_keep_ranks_dense(self, services, session_factory):
        users = [f"user-{i}" for i in range(12)]
        for uid in users:
            await create_user(session_factory, uid)

        await asyncio.gather(*(services.ranker.record_score(uid, (i * 37) % 11) for i, uid in enumerate(users)))

        ranks = await _ranks(session_factory)
        assert sorted(r[0] for r in ranks.values()) == list(range(1, 13))


class TestDeferral:
    async def test_failed_rerank_is_deferred_and_retried(self, services, session_factory):
        await create_user(session_factory, "alice")
        ranker = services.ranker
        real = ranker._recompute
        ranker._recompute = AsyncMock(side_effect=RuntimeError("db down"))

        assert await ranker.record_score("alice", 120) is False
        assert ranker._recompute.await_count == services.settings.rerank_max_attempts
        assert ranker.pending == {(ALL_TIME, "alice"): 120}
        assert await _ranks(session_factory) == {}

        ranker._recompute = real
        assert await ranker.retry_pending() == 1
        assert ranker.pending == {}
        assert await _ranks(session_factory) == {"alice": (1, 0, 0)}


class TestGetPage:
    async def _seed(self, services, session_factory, count: int) -> None:
        for i in range(count):
            uid = f"user-{i:02d}"
            await create_user(session_factory, uid, display_name=f"Player {i}" if i % 2 else None)
            await services.ranker.record_score(uid, 1000 - i * 10)

    async def test_pagination(self, services, session_factory):
        await self._seed(services, session_factory, 5)
        async with session_factory() as db:
            page = await services.ranker.get_page(db, ALL_TIME, 2, 2)

        assert [e["rank"] for e in page["entries"]] == [3, 4]
        assert page["pagination"] == {"page": 2, "page_size": 2, "total": 5, "has_more": True}

    async def test_display_name_fallback(self, services, session_factory):
        await self._seed(services, session_factory, 2)
        async with session_factory() as db:
            page = await services.ranker.get_page(db, ALL_TIME, 1, 10)
        names = [e["display_name"] for e in page["entries"]]
        assert names == ["Coder-user-00", "Player 1"]

    async def test_own_entry_appended_when_off_page(self, services, session_factory):
        await self._seed(services, session_factory, 5)
        async with session_factory() as db:
            page = await services.ranker.get_page(db, ALL_TIME, 1, 2, requesting_user_id="user-04")

        assert [e["user_id"] for e in page["entries"]] == ["user-00", "user-01", "user-04"]
        assert page["entries"][-1]["is_current_user"] is True
        assert page["entries"][-1]["rank"] == 5
        assert not page["entries"][0]["is_current_user"]

    async def test_own_entry_flagged_in_place(self, services, session_factory):
        await self._seed(services, session_factory, 3)
        async with session_factory() as db:
            page = await services.ranker.get_page(db, ALL_TIME, 1, 10, requesting_user_id="user-01")
        assert len(page["entries"]) == 3
        assert [e["is_current_user"] for e in page["entries"]] == [False, True, False]

    async def test_pages_are_cached_and_invalidated(self, services, session_factory):
        await self._seed(services, session_factory, 2)
        async with session_factory() as db:
            await services.ranker.get_page(db, ALL_TIME, 1, 10)
        assert "leaderboard:all-time:page:1:10" in services.cache

        await create_user(session_factory, "newcomer")
        await services.ranker.record_score("newcomer", 5000)
        assert "leaderboard:all-time:page:1:10" not in services.cache

        async with session_factory() as db:
            page = await services.ranker.get_page(db, ALL_TIME, 1, 10)
        assert page["entries"][0]["user_id"] == "newcomer"

    async def test_unknown_period_rejected(self, services, session_factory):
        async with session_factory() as db:
            with pytest.raises(InvalidInput):
                await services.ranker.get_page(db, "weekly", 1, 10)
