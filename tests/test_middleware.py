"""Middleware tests: request ID, rate limiting, CORS, error rendering."""

from typing import Any

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError


class FakePipeline:
    def __init__(self, counters: dict[str, int]) -> None:
        self.counters = counters
        self.keys: list[str] = []

    def incr(self, key: str) -> None:
        self.keys.append(key)

    def expire(self, key: str, seconds: int) -> None:
        pass

    async def execute(self) -> list[Any]:
        results: list[Any] = []
        for key in self.keys:
            self.counters[key] = self.counters.get(key, 0) + 1
            results.extend([self.counters[key], True])
        return results


class FakeCounterRedis:
    def __init__(self) -> None:
        self.counters: dict[str, int] = {}

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self.counters)


class BrokenRedis:
    def pipeline(self) -> FakePipeline:
        raise RedisConnectionError("connection refused")


@pytest.fixture
def counter_redis(monkeypatch: pytest.MonkeyPatch) -> FakeCounterRedis:
    fake = FakeCounterRedis()
    monkeypatch.setattr("algoreview.middleware.rate_limit.get_redis", lambda: fake)
    return fake


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_rate_limit_passes_through_without_redis(client: AsyncClient) -> None:
    """Redis is not initialized: requests go through without rate-limit headers."""
    response = await client.get("/version")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_passes_through_on_redis_error(
    client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("algoreview.middleware.rate_limit.get_redis", BrokenRedis)
    response = await client.get("/api/v1/leaderboard")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_rate_limit_headers(client: AsyncClient, counter_redis: FakeCounterRedis) -> None:
    response = await client.get("/api/v1/leaderboard")
    assert response.headers["x-ratelimit-limit"] == "100"
    assert response.headers["x-ratelimit-remaining"] == "99"
    assert any(key.startswith("ratelimit:user-alice:") for key in counter_redis.counters)


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient, counter_redis: FakeCounterRedis) -> None:
    """101st request in a window returns 429 with Retry-After."""
    for _ in range(100):
        await client.get("/nonexistent-path")
    response = await client.get("/api/v1/leaderboard")
    assert response.status_code == 429
    assert "retry-after" in response.headers

    # Limits are per caller
    other = await client.get("/api/v1/leaderboard", headers={"X-User-Id": "user-bob"})
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_status_polling_exempt(client: AsyncClient, counter_redis: FakeCounterRedis) -> None:
    for _ in range(150):
        response = await client.get("/api/v1/jobs/missing/status")
        assert response.status_code == 404
    assert counter_redis.counters == {}


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/api/v1/jobs",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"},
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


@pytest.mark.asyncio
async def test_app_error_body(client: AsyncClient) -> None:
    response = await client.get("/api/v1/jobs/missing")
    assert response.status_code == 404
    assert response.json() == {"detail": "Job not found", "code": "not_found"}


@pytest.mark.asyncio
async def test_unknown_path_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"
