"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from algoreview.analysis.schemas import AnalysisResult, ComplexityEstimate, Suggestion
from algoreview.config import Settings
from algoreview.database import close_db, create_schema, get_session_factory, init_db
from algoreview.db.models import AnalysisJob, User
from algoreview.errors import AnalysisDegraded
from algoreview.main import create_app
from algoreview.services import Services, build_services, close_services, init_services


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Records pub/sub publishes."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


def make_result(improvement: float = 80.0, quality: float = 90.0, **overrides: object) -> AnalysisResult:
    data = {
        "time_complexity": ComplexityEstimate(before="O(n^2)", after="O(n)", improved=True),
        "space_complexity": ComplexityEstimate(before="O(n)", after="O(n)"),
        "improvement_percentage": improvement,
        "suggestions": [Suggestion(title="Use a hash map", priority="high", line_number=3)],
        "detected_patterns": ["Hash Map"],
        "code_quality_score": quality,
        "readability_score": 80.0,
        "optimized_code": "def f(xs):\n    return set(xs)",
        "model": "stub-model",
    }
    data.update(overrides)
    return AnalysisResult(**data)


class StubAnalyzer:
    """Returns a fixed result (or raises) and counts calls."""

    def __init__(self, result: AnalysisResult | None = None, error: Exception | None = None) -> None:
        self.result = result or make_result()
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    async def analyze(self, code: str, language: str, title: str) -> AnalysisResult:
        self.calls.append((code, language, title))
        if self.error is not None:
            raise self.error
        return self.result


class SlowAnalyzer:
    """Never finishes within any reasonable timeout."""

    async def analyze(self, code: str, language: str, title: str) -> AnalysisResult:
        await asyncio.sleep(3600)
        raise AnalysisDegraded("unreachable")


class GatedAnalyzer(StubAnalyzer):
    """Blocks until ``release`` is called, so tests can observe in-flight states."""

    def __init__(self, result: AnalysisResult | None = None) -> None:
        super().__init__(result)
        self.gate = asyncio.Event()

    def release(self) -> None:
        self.gate.set()

    async def analyze(self, code: str, language: str, title: str) -> AnalysisResult:
        await self.gate.wait()
        return await super().analyze(code, language, title)


SAMPLE_CODE = """def has_duplicates(xs):
    for i in range(len(xs)):
        for j in range(i + 1, len(xs)):
            if xs[i] == xs[j]:
                return True
    return False
"""


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        anthropic_api_key="",
        analysis_timeout_seconds=1.0,
        rerank_retry_delay_seconds=0.0,
        completion_retry_delay_seconds=0.0,
        log_format="console",
    )


@pytest_asyncio.fixture
async def session_factory(settings: Settings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema in a per-test SQLite file."""
    await init_db(settings.database_url)
    await create_schema()
    yield get_session_factory()
    await close_db()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def analyzer() -> StubAnalyzer:
    return StubAnalyzer()


@pytest_asyncio.fixture
async def services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    analyzer: StubAnalyzer,
    fake_redis: FakeRedis,
) -> AsyncGenerator[Services, None]:
    svc = build_services(settings, session_factory, redis=fake_redis, analyzer=analyzer)
    init_services(svc)
    yield svc
    await close_services()


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app, authenticated as ``user-alice`` via gateway headers."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": "user-alice", "X-User-Name": "Alice"},
    ) as ac:
        yield ac


async def create_user(factory: async_sessionmaker[AsyncSession], user_id: str, display_name: str | None = None) -> None:
    async with factory() as db:
        db.add(User(id=user_id, display_name=display_name))
        await db.commit()


async def create_job(
    factory: async_sessionmaker[AsyncSession],
    user_id: str,
    status: str = "analyzing",
    code: str = SAMPLE_CODE,
) -> str:
    job_id = str(uuid.uuid4())
    async with factory() as db:
        if await db.get(User, user_id) is None:
            db.add(User(id=user_id))
            await db.flush()
        db.add(AnalysisJob(
            id=job_id,
            user_id=user_id,
            title="Duplicate check",
            language="python",
            code=code,
            line_count=len(code.split("\n")),
            status=status,
            created_at=datetime.now(timezone.utc),
        ))
        await db.commit()
    return job_id
