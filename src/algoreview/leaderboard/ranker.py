"""Leaderboard ranker: full dense re-rank on every score change.

Each score change upserts the user's entry, re-sorts every entry of the
period by ``(score DESC, id ASC)`` and rewrites ranks 1..N in one
transaction. Re-ranks are single-writer (one asyncio lock per ranker) so
concurrent completions never interleave rank assignment.

A re-rank that keeps failing is deferred, never rolled into the caller:
the user's stats update stays committed and the maintenance loop retries.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from algoreview.cache.keys import LEADERBOARD_PREFIX, leaderboard_page_key, leaderboard_user_key
from algoreview.cache.score_cache import ScoreCache
from algoreview.db.models import LeaderboardEntry, User
from algoreview.errors import InvalidInput

logger = structlog.get_logger()

ALL_TIME = "all-time"
SUPPORTED_PERIODS = frozenset({ALL_TIME})


class Rankable(Protocol):
    id: int
    score: int
    rank: int
    previous_rank: int
    rank_change: int


def assign_dense_ranks(entries: Sequence[Rankable]) -> list[Rankable]:
    """Sort by score DESC then id ASC and assign ranks 1..N in place.

    For each entry: ``previous_rank`` takes the rank held before this pass and
    ``rank_change = previous_rank - new_rank`` (positive = moved up). Entries
    never ranked before (rank 0) get ``rank_change`` 0. Re-running with
    unchanged scores yields the same ranks and zero change everywhere.
    Returns the entries whose rank fields changed.
    """
    ordered = sorted(entries, key=lambda e: (-e.score, e.id))
    changed: list[Rankable] = []
    for position, entry in enumerate(ordered, start=1):
        old_rank = entry.rank
        new_previous = old_rank
        new_change = old_rank - position if old_rank > 0 else 0
        if (entry.rank, entry.previous_rank, entry.rank_change) != (position, new_previous, new_change):
            changed.append(entry)
        entry.previous_rank = new_previous
        entry.rank = position
        entry.rank_change = new_change
    return changed


def display_name_for(user_id: str, display_name: str | None) -> str:
    return display_name or f"Coder-{user_id[:8]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaderboardRanker:
    """Owns every write to ``leaderboard_entries``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: ScoreCache,
        leaderboard_ttl: float = 60.0,
        max_attempts: int = 3,
        retry_delay: float = 0.1,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._ttl = leaderboard_ttl
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._clock = clock
        self._lock = asyncio.Lock()
        self._pending: dict[tuple[str, str], int] = {}

    @property
    def pending(self) -> dict[tuple[str, str], int]:
        return dict(self._pending)

    async def record_score(self, user_id: str, score: int, period: str = ALL_TIME) -> bool:
        """Upsert ``user_id``'s score and re-rank the period.

        Retries up to ``max_attempts``; on final failure the update is queued
        for the maintenance loop and False is returned.
        """
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._recompute(user_id, score, period)
            except Exception:
                logger.warning("rerank_failed", user_id=user_id, period=period, attempt=attempt, exc_info=True)
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_delay)
                continue
            self._pending.pop((period, user_id), None)
            return True

        self._pending[(period, user_id)] = score
        logger.error("rerank_deferred", user_id=user_id, period=period, score=score)
        return False

    async def retry_pending(self) -> int:
        """Retry deferred re-ranks. Returns how many succeeded."""
        succeeded = 0
        for (period, user_id), score in list(self._pending.items()):
            # A newer successful update may already have replaced this one.
            if self._pending.get((period, user_id)) != score:
                continue
            if await self.record_score(user_id, score, period):
                succeeded += 1
        return succeeded

    async def _recompute(self, user_id: str, score: int, period: str) -> None:
        async with self._lock:
            async with self._session_factory() as db:
                now = self._clock()
                result = await db.execute(
                    select(LeaderboardEntry).where(
                        LeaderboardEntry.period == period,
                        LeaderboardEntry.user_id == user_id,
                    )
                )
                entry = result.scalar_one_or_none()
                if entry is None:
                    entry = LeaderboardEntry(
                        user_id=user_id,
                        period=period,
                        score=score,
                        rank=0,
                        previous_rank=0,
                        rank_change=0,
                        updated_at=now,
                    )
                    db.add(entry)
                    await db.flush()
                elif entry.score != score:
                    entry.score = score
                    entry.updated_at = now

                changed = await rerank(db, period, now)
                await db.commit()

            self._cache.invalidate(LEADERBOARD_PREFIX)
            logger.info("rerank_complete", user_id=user_id, period=period, score=score, changed=changed)

    async def get_page(
        self,
        db: AsyncSession,
        period: str,
        page: int,
        page_size: int,
        requesting_user_id: str | None = None,
    ) -> dict[str, Any]:
        """One page of entries by rank, plus the caller's own entry when it is off-page."""
        if period not in SUPPORTED_PERIODS:
            msg = f"Unknown leaderboard period: {period}"
            raise InvalidInput(msg)
        if page < 1 or page_size < 1:
            msg = "page and page_size must be positive"
            raise InvalidInput(msg)

        cached_page = await self._cache.get_or_load(
            leaderboard_page_key(period, page, page_size),
            lambda: _load_page(db, period, page, page_size),
            ttl=self._ttl,
        )

        entries = [
            {**e, "is_current_user": e["user_id"] == requesting_user_id}
            for e in cached_page["entries"]
        ]

        if requesting_user_id is not None and not any(e["is_current_user"] for e in entries):
            own = self._cache.get(leaderboard_user_key(period, requesting_user_id))
            if own is None:
                since = self._cache.generation
                own = await _load_user_entry(db, period, requesting_user_id)
                self._cache.put(leaderboard_user_key(period, requesting_user_id), own, ttl=self._ttl, since=since)
            if own is not None:
                entries.append({**own, "is_current_user": True})

        total = cached_page["total"]
        return {
            "entries": entries,
            "pagination": {
                "page": page,
                "page_size": page_size,
                "total": total,
                "has_more": page * page_size < total,
            },
        }

    async def get_user_rank(self, db: AsyncSession, user_id: str, period: str = ALL_TIME) -> dict[str, Any] | None:
        """Cached rank/score for a single user, or None when unranked."""
        key = leaderboard_user_key(period, user_id)
        own = self._cache.get(key)
        if own is None:
            since = self._cache.generation
            own = await _load_user_entry(db, period, user_id)
            self._cache.put(key, own, ttl=self._ttl, since=since)
        return own


async def rerank(db: AsyncSession, period: str, now: datetime | None = None) -> int:
    """Re-rank every entry of ``period`` inside the caller's transaction."""
    result = await db.execute(select(LeaderboardEntry).where(LeaderboardEntry.period == period))
    entries = list(result.scalars().all())
    changed = assign_dense_ranks(entries)
    stamp = now or _utcnow()
    for entry in changed:
        entry.updated_at = stamp
    await db.flush()
    return len(changed)


def _entry_dict(entry: LeaderboardEntry, display_name: str | None) -> dict[str, Any]:
    return {
        "rank": entry.rank,
        "user_id": entry.user_id,
        "display_name": display_name_for(entry.user_id, display_name),
        "score": entry.score,
        "previous_rank": entry.previous_rank,
        "rank_change": entry.rank_change,
    }


async def _load_page(db: AsyncSession, period: str, page: int, page_size: int) -> dict[str, Any]:
    total_result = await db.execute(
        select(func.count()).select_from(LeaderboardEntry).where(LeaderboardEntry.period == period)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(LeaderboardEntry, User.display_name)
        .join(User, User.id == LeaderboardEntry.user_id)
        .where(LeaderboardEntry.period == period)
        .order_by(LeaderboardEntry.rank.asc(), LeaderboardEntry.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    entries = [_entry_dict(row.LeaderboardEntry, row.display_name) for row in result]
    return {"entries": entries, "total": total}


async def _load_user_entry(db: AsyncSession, period: str, user_id: str) -> dict[str, Any] | None:
    result = await db.execute(
        select(LeaderboardEntry, User.display_name)
        .join(User, User.id == LeaderboardEntry.user_id)
        .where(LeaderboardEntry.period == period, LeaderboardEntry.user_id == user_id)
    )
    row = result.first()
    if row is None:
        return None
    return _entry_dict(row.LeaderboardEntry, row.display_name)
