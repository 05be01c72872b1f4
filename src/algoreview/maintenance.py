"""Periodic maintenance: cache sweep, deferred leaderboard re-ranks, notification retention."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from algoreview.cache.score_cache import ScoreCache
from algoreview.feed.service import prune_notifications
from algoreview.leaderboard.ranker import LeaderboardRanker

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MaintenanceLoop:
    """Runs ``tick`` every ``interval`` seconds until stopped. Never on a request path."""

    def __init__(
        self,
        cache: ScoreCache,
        ranker: LeaderboardRanker,
        interval: float = 60.0,
        grace: float = 60.0,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        notification_retention: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.ranker = ranker
        self.interval = interval
        self.grace = grace
        self.session_factory = session_factory
        self.notification_retention = notification_retention
        self._clock = clock
        self._running = False
        self._task: asyncio.Task[None] | None = None

    async def tick(self) -> dict[str, int]:
        swept = self.cache.sweep(self.grace)
        reranked = await self.ranker.retry_pending() if self.ranker.pending else 0
        pruned = await self._prune()
        if swept or reranked or pruned:
            logger.info("maintenance_tick", swept=swept, reranked=reranked, pruned=pruned, **self.cache.stats())
        return {"swept": swept, "reranked": reranked, "pruned": pruned}

    async def _prune(self) -> int:
        if self.session_factory is None or self.notification_retention is None:
            return 0
        async with self.session_factory() as db:
            pruned = await prune_notifications(db, self._clock() - self.notification_retention)
            await db.commit()
        return pruned

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("maintenance_tick_failed")

    def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._run(), name="maintenance")
        logger.info("maintenance_started", interval=self.interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
