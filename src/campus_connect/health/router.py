"""Liveness, readiness and version probes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import get_settings
from campus_connect.database import get_session
from campus_connect.db.models import Badge
from campus_connect.redis_client import get_redis_or_none

router = APIRouter()


async def _check_database(db: AsyncSession) -> tuple[str, int | None]:
    try:
        result = await db.execute(select(func.count()).select_from(Badge))
        return "ok", result.scalar_one()
    except Exception as exc:
        return f"error: {exc}", None


async def _check_redis() -> str:
    redis = get_redis_or_none()
    if redis is None:
        return "error: not connected"
    try:
        await redis.ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_session)) -> dict[str, object]:  # noqa: B008
    """Database and Redis reachability, plus whether the badge catalog is seeded.

    Redis only carries best-effort pushes, so the service reports
    ``degraded`` rather than failing when it is down.
    """
    database, badge_count = await _check_database(db)
    checks: dict[str, object] = {
        "database": database,
        "redis": await _check_redis(),
        "badge_catalog": "ok" if badge_count else "empty",
    }
    status = "ready" if all(value == "ok" for value in checks.values()) else "degraded"
    return {"status": status, "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
