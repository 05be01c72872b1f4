"""Analysis runner: drives one job from queued to a terminal status.

Runs off the request path as an asyncio task per job. For each job:

1. queued -> analyzing (committed, visible to pollers)
2. external analysis under a timeout; any failure degrades to the local fallback
3. ledger update and leaderboard re-rank
4. result written, analyzing -> completed
5. activity entry and notification, best-effort

Step 3 finishes before step 4 commits, so a client that sees ``completed``
also sees the updated stats and rank. ``failed`` is reserved for internal
errors; analyzer problems never fail a job. Once step 3 has applied, the job
can only end ``completed``: the write in step 4 is retried, and if it still
fails the job stays ``analyzing`` until ``resume_pending`` finishes it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from algoreview.analysis.client import Analyzer
from algoreview.analysis.fallback import fallback_analysis
from algoreview.analysis.schemas import AnalysisResult
from algoreview.db.models import AnalysisJob
from algoreview.errors import AnalysisDegraded, JobFailed
from algoreview.events import ANALYSIS_COMPLETED_CHANNEL, publish_event
from algoreview.feed.service import record_job_completion
from algoreview.gamification.ledger import GamificationLedger
from algoreview.jobs.states import (
    ANALYZING,
    COMPLETED,
    FAILED,
    PENDING_STATUSES,
    QUEUED,
    TERMINAL_STATUSES,
    can_transition,
    transition,
)

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisRunner:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        analyzer: Analyzer,
        ledger: GamificationLedger,
        redis: object | None = None,
        timeout: float = 15.0,
        completion_attempts: int = 3,
        completion_retry_delay: float = 0.1,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._analyzer = analyzer
        self._ledger = ledger
        self._redis = redis
        self._timeout = timeout
        self._completion_attempts = max(1, completion_attempts)
        self._completion_retry_delay = completion_retry_delay
        self._clock = clock
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def schedule(self, job_id: str) -> asyncio.Task[None]:
        """Start processing ``job_id`` in the background and return immediately."""
        task = asyncio.create_task(self.run(job_id), name=f"analysis:{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every scheduled job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight jobs; they resume from their stored status on next startup."""
        for task in list(self._tasks):
            task.cancel()
        await self.drain()

    async def resume_pending(self) -> int:
        """Reschedule jobs left queued or analyzing by a previous process."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(AnalysisJob.id)
                .where(AnalysisJob.status.in_(PENDING_STATUSES))
                .order_by(AnalysisJob.created_at.asc())
            )
            job_ids = list(result.scalars())
        for job_id in job_ids:
            self.schedule(job_id)
        if job_ids:
            logger.info("jobs_resumed", count=len(job_ids))
        return len(job_ids)

    async def run(self, job_id: str) -> None:
        try:
            await self._process(job_id)
        except JobFailed as exc:
            logger.error("job_vanished", job_id=job_id, detail=exc.message)
        except Exception:
            logger.exception("job_failed", job_id=job_id)
            await self._mark_failed(job_id)

    async def _process(self, job_id: str) -> None:
        started = time.monotonic()

        async with self._session_factory() as db:
            job = await db.get(AnalysisJob, job_id)
            if job is None:
                msg = f"Job {job_id} not found"
                raise JobFailed(msg)
            if job.status in TERMINAL_STATUSES:
                logger.info("job_already_finished", job_id=job_id, status=job.status)
                return
            if job.status == QUEUED:
                transition(job, ANALYZING)
                await db.commit()
            user_id, code, language, title = job.user_id, job.code, job.language, job.title

        logger.info("job_analyzing", job_id=job_id, user_id=user_id)
        result = await self.analyze(code, language, title)
        outcome = await self._ledger.apply_job(job_id, user_id, result)
        processing_ms = await self._complete(job_id, result, started)
        await self._record_feed(job_id, user_id, title, language, result)

        logger.info(
            "job_completed",
            job_id=job_id,
            user_id=user_id,
            used_fallback=result.used_fallback,
            improvement=result.improvement_percentage,
            processing_ms=processing_ms,
            leveled_up=bool(outcome and outcome.leveled_up),
        )
        await publish_event(
            self._redis,
            ANALYSIS_COMPLETED_CHANNEL,
            {
                "job_id": job_id,
                "user_id": user_id,
                "improvement_percentage": result.improvement_percentage,
                "used_fallback": result.used_fallback,
            },
        )

    async def _complete(self, job_id: str, result: AnalysisResult, started: float) -> int:
        """Write the result and move to ``completed``, retrying transient failures."""
        attempt = 1
        while True:
            try:
                async with self._session_factory() as db:
                    job = await db.get(AnalysisJob, job_id)
                    if job is None:
                        msg = f"Job {job_id} disappeared before completion"
                        raise JobFailed(msg)
                    transition(job, COMPLETED)
                    job.result = result.model_dump(mode="json")
                    job.optimized_code = result.optimized_code
                    job.model = result.model or "fallback"
                    job.processing_time_ms = int((time.monotonic() - started) * 1000)
                    job.completed_at = self._clock()
                    await db.commit()
                    return job.processing_time_ms
            except JobFailed:
                raise
            except Exception:
                if attempt >= self._completion_attempts:
                    raise
                logger.warning("job_completion_retry", job_id=job_id, attempt=attempt, exc_info=True)
                await asyncio.sleep(self._completion_retry_delay)
                attempt += 1

    async def _record_feed(
        self, job_id: str, user_id: str, title: str, language: str, result: AnalysisResult
    ) -> None:
        """Activity and notification for a completed job. Failures are logged only."""
        try:
            async with self._session_factory() as db:
                await record_job_completion(
                    db,
                    job_id=job_id,
                    user_id=user_id,
                    title=title,
                    language=language,
                    improvement_percentage=result.improvement_percentage,
                    now=self._clock(),
                )
                await db.commit()
        except Exception:
            logger.warning("job_feed_write_failed", job_id=job_id, exc_info=True)

    async def analyze(self, code: str, language: str, title: str) -> AnalysisResult:
        """External analysis with a deadline; every failure mode folds into the fallback."""
        try:
            return await asyncio.wait_for(self._analyzer.analyze(code, language, title), timeout=self._timeout)
        except asyncio.TimeoutError:
            reason = f"Analysis timed out after {self._timeout:g}s"
        except AnalysisDegraded as exc:
            reason = exc.reason
        except Exception as exc:
            logger.warning("analyzer_error", exc_info=True)
            reason = f"Analysis error: {exc.__class__.__name__}"

        logger.warning("analysis_degraded", reason=reason, language=language)
        return fallback_analysis(code, language, reason)

    async def _mark_failed(self, job_id: str) -> None:
        try:
            async with self._session_factory() as db:
                job = await db.get(AnalysisJob, job_id)
                if job is None:
                    return
                if job.ledger_applied_at is not None:
                    # Already counted in the ledger; only completion may follow
                    logger.error("job_completion_pending", job_id=job_id, status=job.status)
                    return
                if job.status == QUEUED:
                    transition(job, ANALYZING)
                if not can_transition(job.status, FAILED):
                    return
                transition(job, FAILED)
                job.completed_at = self._clock()
                await db.commit()
        except Exception:
            logger.exception("job_mark_failed_error", job_id=job_id)
