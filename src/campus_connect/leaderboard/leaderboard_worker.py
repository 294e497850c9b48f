"""arq worker that keeps every leaderboard snapshot fresh.

Boards are also rebuilt right after badge awards; the hourly job picks
up score changes that award-time refreshes do not cover (mentor rating
edits, month and week roll-over).
"""

from __future__ import annotations

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from campus_connect.config import get_settings
from campus_connect.database import close_db, get_session_factory, init_db
from campus_connect.leaderboard.leaderboard_service import rebuild_all

logger = logging.getLogger(__name__)


async def refresh_leaderboards(ctx: dict[str, Any]) -> dict[str, int]:
    """Rebuild all supported boards. Runs at the top of every hour."""
    async with get_session_factory()() as db:
        counts = await rebuild_all(db, ctx.get("redis"))
    logger.info("Leaderboard refresh complete: %s", counts)
    return counts


async def startup(ctx: dict[str, Any]) -> None:  # noqa: ARG001
    await init_db(get_settings().database_url)
    logger.info("Leaderboard worker started")


async def shutdown(ctx: dict[str, Any]) -> None:  # noqa: ARG001
    await close_db()
    logger.info("Leaderboard worker stopped")


class WorkerSettings:
    """arq worker configuration."""

    functions = [refresh_leaderboards]  # noqa: RUF012
    cron_jobs = [cron(refresh_leaderboards, minute=0, run_at_startup=True)]  # noqa: RUF012
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    job_timeout = get_settings().worker_timeout_seconds
