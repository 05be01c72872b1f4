"""Redis-backed fixed-window rate limiting middleware."""

import time
from typing import Any

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from algoreview.redis_client import get_redis

logger = structlog.get_logger()

# Health checks and status polling are exempt; polling cadence belongs to the client.
_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})
_EXEMPT_PREFIX = "/api/v1/jobs/"
_EXEMPT_SUFFIX = "/status"


def _is_exempt(path: str) -> bool:
    return path in _EXEMPT_PATHS or (path.startswith(_EXEMPT_PREFIX) and path.endswith(_EXEMPT_SUFFIX))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limit requests per caller (gateway user id, else client IP) using Redis counters."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Check the caller's window count, return 429 if exceeded."""
        if _is_exempt(request.url.path):
            return await call_next(request)

        caller = request.headers.get("X-User-Id") or (request.client.host if request.client else "unknown")
        window = int(time.time()) // self.window_seconds
        rate_key = f"ratelimit:{caller}:{window}"

        try:
            redis = get_redis()
            pipe = redis.pipeline()
            pipe.incr(rate_key)
            pipe.expire(rate_key, self.window_seconds + 1)
            results: list[Any] = await pipe.execute()
        except RuntimeError:
            # Redis not initialized: let the request through without rate limiting
            return await call_next(request)
        except RedisError:
            logger.warning("rate_limit_unavailable", exc_info=True)
            return await call_next(request)

        current_count: int = results[0]
        remaining = max(0, self.requests_per_window - current_count)

        if current_count > self.requests_per_window:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(self.requests_per_window),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_window)
        return response
