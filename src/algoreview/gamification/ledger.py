"""Gamification ledger: folds one completed job into a user's progress.

``fold_job`` is the pure state transition. ``GamificationLedger`` wraps it
with persistence, per-user serialization, cache invalidation, and the
follow-up leaderboard re-rank.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from algoreview.analysis.schemas import AnalysisResult
from algoreview.cache.keys import LEADERBOARD_PREFIX, stats_key
from algoreview.cache.score_cache import ScoreCache
from algoreview.db.models import AnalysisJob, UserProgress
from algoreview.errors import JobFailed
from algoreview.events import LEVEL_UP_CHANNEL, publish_event
from algoreview.gamification.leveling import INITIAL_LEVEL_STATE, LevelState, apply_experience, experience_award
from algoreview.gamification.streak import StreakState, advance_streak
from algoreview.leaderboard.ranker import ALL_TIME, LeaderboardRanker
from algoreview.leaderboard.scoring import calculate_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    level: int = INITIAL_LEVEL_STATE.level
    experience: int = INITIAL_LEVEL_STATE.experience
    experience_to_next_level: int = INITIAL_LEVEL_STATE.experience_to_next_level
    total_jobs: int = 0
    optimized_jobs: int = 0
    total_improvement: float = 0.0
    average_improvement: float = 0.0
    average_quality: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_at: datetime | None = None

    @property
    def score(self) -> int:
        return calculate_score(
            total_jobs=self.total_jobs,
            average_improvement=self.average_improvement,
            level=self.level,
            current_streak=self.current_streak,
            average_quality=self.average_quality,
        )

    @classmethod
    def from_row(cls, row: UserProgress) -> ProgressSnapshot:
        return cls(**{field: getattr(row, field) for field in cls.__dataclass_fields__})

    def write_to(self, row: UserProgress) -> None:
        for field, value in asdict(self).items():
            setattr(row, field, value)


def fold_job(
    snapshot: ProgressSnapshot,
    improvement_percentage: float,
    quality_score: float,
    now: datetime,
) -> ProgressSnapshot:
    """Apply one completed job: XP and levels, aggregates, then streak."""
    levels = apply_experience(
        LevelState(snapshot.level, snapshot.experience, snapshot.experience_to_next_level),
        experience_award(improvement_percentage),
    )

    total_jobs = snapshot.total_jobs + 1
    total_improvement = snapshot.total_improvement + improvement_percentage
    average_quality = (snapshot.average_quality * (total_jobs - 1) + quality_score) / total_jobs

    streak = advance_streak(
        StreakState(snapshot.current_streak, snapshot.longest_streak, snapshot.last_activity_at),
        now,
    )

    return replace(
        snapshot,
        level=levels.level,
        experience=levels.experience,
        experience_to_next_level=levels.experience_to_next_level,
        total_jobs=total_jobs,
        optimized_jobs=snapshot.optimized_jobs + (1 if improvement_percentage > 0 else 0),
        total_improvement=total_improvement,
        average_improvement=total_improvement / total_jobs,
        average_quality=average_quality,
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        last_activity_at=streak.last_activity_at,
    )


async def get_or_create_progress(db: AsyncSession, user_id: str, now: datetime) -> UserProgress:
    """Get or create the single progress row for a user."""
    result = await db.execute(select(UserProgress).where(UserProgress.user_id == user_id))
    progress = result.scalar_one_or_none()
    if progress is None:
        progress = UserProgress(user_id=user_id, updated_at=now)
        ProgressSnapshot().write_to(progress)
        db.add(progress)
        await db.flush()
    return progress


@dataclass(frozen=True)
class LedgerOutcome:
    user_id: str
    experience_awarded: int
    old_level: int
    new_level: int
    score: int
    reranked: bool

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GamificationLedger:
    """Sole writer of ``user_progress``; serializes updates per user."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ranker: LeaderboardRanker,
        cache: ScoreCache,
        redis: object | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._ranker = ranker
        self._cache = cache
        self._redis = redis
        self._clock = clock
        self._user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    async def apply_job(self, job_id: str, user_id: str, result: AnalysisResult) -> LedgerOutcome | None:
        """Fold a finished job into its owner's progress, then re-rank.

        Returns None when the job's ledger update was already applied.
        The progress commit is never undone by a failing re-rank.
        """
        async with self._lock_for(user_id):
            now = self._clock()
            async with self._session_factory() as db:
                job = await db.get(AnalysisJob, job_id)
                if job is None:
                    msg = f"Job {job_id} disappeared before its ledger update"
                    raise JobFailed(msg)
                if job.ledger_applied_at is not None:
                    logger.info("Ledger already applied for job %s", job_id)
                    return None

                progress = await get_or_create_progress(db, user_id, now)
                before = ProgressSnapshot.from_row(progress)
                after = fold_job(before, result.improvement_percentage, result.code_quality_score, now)
                after.write_to(progress)
                progress.updated_at = now
                job.ledger_applied_at = now
                await db.commit()

            self._cache.delete(stats_key(user_id))

            # Inside the user lock so a later job's score never lands before this one.
            reranked = await self._ranker.record_score(user_id, after.score, ALL_TIME)
            self._cache.invalidate(LEADERBOARD_PREFIX)

        outcome = LedgerOutcome(
            user_id=user_id,
            experience_awarded=experience_award(result.improvement_percentage),
            old_level=before.level,
            new_level=after.level,
            score=after.score,
            reranked=reranked,
        )
        logger.info(
            "Ledger applied: user=%s job=%s xp=+%d level=%d score=%d",
            user_id, job_id, outcome.experience_awarded, after.level, after.score,
        )

        if outcome.leveled_up:
            await publish_event(
                self._redis,
                LEVEL_UP_CHANNEL,
                {"user_id": user_id, "old_level": before.level, "new_level": after.level},
            )
        return outcome

    async def get_progress(self, db: AsyncSession, user_id: str) -> dict[str, Any]:
        """Progress snapshot through the score cache. Never creates a row."""
        key = stats_key(user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        since = self._cache.generation
        result = await db.execute(select(UserProgress).where(UserProgress.user_id == user_id))
        row = result.scalar_one_or_none()
        snapshot = ProgressSnapshot.from_row(row) if row is not None else ProgressSnapshot()
        data = {**asdict(snapshot), "score": snapshot.score}
        self._cache.put(key, data, since=since)
        return data
