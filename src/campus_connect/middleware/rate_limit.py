"""Fixed-window rate limiting backed by Redis counters.

Each client IP gets ``requests_per_window`` requests per window. Probes are
exempt. When Redis is not connected, or a counter call fails, requests are
served unthrottled.
"""

from __future__ import annotations

import time
from typing import Any

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from campus_connect.redis_client import get_redis_or_none

_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})

logger = structlog.get_logger(__name__)


def window_key(client: str, now: float, window_seconds: int) -> str:
    return f"cc:ratelimit:{client}:{int(now) // window_seconds}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def _hit(self, redis: Any, key: str) -> int | None:  # noqa: ANN401
        try:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.window_seconds + 1)
                count, _ = await pipe.execute()
        except RedisError:
            logger.warning("rate_limit_unavailable", key=key)
            return None
        return int(count)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        redis = get_redis_or_none()
        if redis is None or request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        count = await self._hit(redis, window_key(client, time.time(), self.window_seconds))
        if count is None:
            return await call_next(request)

        limit_headers = {"X-RateLimit-Limit": str(self.requests_per_window)}
        if count > self.requests_per_window:
            logger.info("rate_limited", client=client, path=request.url.path)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={**limit_headers, "X-RateLimit-Remaining": "0", "Retry-After": str(self.window_seconds)},
            )

        response = await call_next(request)
        response.headers.update(limit_headers)
        response.headers["X-RateLimit-Remaining"] = str(self.requests_per_window - count)
        return response
