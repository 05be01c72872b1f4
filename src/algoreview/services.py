"""Process-wide service container.

One cache, ranker, ledger, runner, and billing gate per process, wired at
startup and torn down at shutdown like the database and Redis pools.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from algoreview.analysis.client import Analyzer, build_analyzer
from algoreview.billing import BillingGate, build_billing_gate
from algoreview.cache.score_cache import ScoreCache
from algoreview.config import Settings
from algoreview.gamification.ledger import GamificationLedger
from algoreview.jobs.runner import AnalysisRunner
from algoreview.leaderboard.ranker import LeaderboardRanker


@dataclass
class Services:
    settings: Settings
    cache: ScoreCache
    ranker: LeaderboardRanker
    ledger: GamificationLedger
    runner: AnalysisRunner
    billing: BillingGate


_services: Services | None = None


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    redis: object | None = None,
    analyzer: Analyzer | None = None,
    billing: BillingGate | None = None,
    cache: ScoreCache | None = None,
) -> Services:
    """Wire the collaborators. Tests pass fakes for the analyzer, billing gate, or cache."""
    cache = cache or ScoreCache(
        max_entries=settings.cache_max_entries,
        default_ttl=settings.cache_default_ttl_seconds,
    )
    ranker = LeaderboardRanker(
        session_factory,
        cache,
        leaderboard_ttl=settings.cache_leaderboard_ttl_seconds,
        max_attempts=settings.rerank_max_attempts,
        retry_delay=settings.rerank_retry_delay_seconds,
    )
    ledger = GamificationLedger(session_factory, ranker, cache, redis=redis)
    runner = AnalysisRunner(
        session_factory,
        analyzer or build_analyzer(settings),
        ledger,
        redis=redis,
        timeout=settings.analysis_timeout_seconds,
        completion_attempts=settings.completion_max_attempts,
        completion_retry_delay=settings.completion_retry_delay_seconds,
    )
    return Services(
        settings=settings,
        cache=cache,
        ranker=ranker,
        ledger=ledger,
        runner=runner,
        billing=billing or build_billing_gate(settings),
    )


def init_services(services: Services) -> None:
    """Install the process-wide container."""
    global _services  # noqa: PLW0603
    _services = services


async def close_services() -> None:
    """Cancel in-flight analyses and drop the container."""
    global _services  # noqa: PLW0603
    if _services:
        await _services.runner.shutdown()
        _services.cache.clear()
        _services = None


def get_services() -> Services:
    """Get the service container (FastAPI dependency)."""
    if _services is None:
        msg = "Services not initialized. Call init_services() first."
        raise RuntimeError(msg)
    return _services
