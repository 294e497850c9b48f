"""Shared Redis client.

Redis carries only best-effort traffic here (notification pushes, domain
events, rate-limit counters), so most callers use ``get_redis_or_none``
and carry on without it.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(url, encoding="utf-8", decode_responses=True, max_connections=max_connections)
    logger.info("Redis client configured for %s", url.rsplit("@", 1)[-1])


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis_or_none() -> redis.Redis | None:
    return _client
