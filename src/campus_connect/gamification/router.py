"""Gamification API endpoints — activities, badge catalog, progress."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.auth.dependencies import Caller, get_caller, get_current_user
from campus_connect.database import get_session
from campus_connect.db.models import Badge, User
from campus_connect.dependencies import get_redis_dep
from campus_connect.errors import ForbiddenError
from campus_connect.gamification.activity_tracker import reevaluate_badges, track_activity
from campus_connect.gamification.badge_service import get_badge_by_slug, list_badges
from campus_connect.gamification.progress_service import (
    get_achievement_analytics,
    get_badge_progress,
    get_user_progress,
)
from campus_connect.gamification.schemas import (
    AchievementAnalyticsResponse,
    ActivityRequest,
    ActivityResponse,
    AllBadgesResponse,
    AwardedBadge,
    BadgeProgressResponse,
    BadgeResponse,
    EvaluateResponse,
    UserProgressResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


def _badge_response(badge: Badge) -> BadgeResponse:
    return BadgeResponse(
        slug=badge.slug,
        name=badge.name,
        description=badge.description,
        icon=badge.icon,
        category=badge.category,
        rarity=badge.rarity,
        criteria_type=badge.criteria_type,
        criteria_target=badge.criteria_target,
        criteria_metric=badge.criteria_metric,
        points=badge.points,
    )


def _awarded(badges: list[Badge]) -> list[AwardedBadge]:
    return [
        AwardedBadge(
            slug=b.slug,
            name=b.name,
            icon=b.icon,
            category=b.category,
            rarity=b.rarity,
            points=b.points,
        )
        for b in badges
    ]


# ── Activity ingestion ──


@router.post("/activities", response_model=ActivityResponse)
async def record_activity(
    body: ActivityRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Record one activity for a user and return the awards it triggered.

    Service tokens may record for any user; a user token only for itself.
    """
    if not caller.may_act_for(body.user_id):
        raise ForbiddenError("Cannot record activity for another user")
    result = await track_activity(db, redis, body.user_id, body.kind, body.metadata)
    stats = result.stats
    return ActivityResponse(
        user_id=body.user_id,
        kind=body.kind,
        level=stats.level,
        total_points=stats.total_points,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        new_badges=_awarded(result.new_badges),
        badge_evaluation_failed=result.badge_evaluation_failed,
    )


@router.post("/users/{user_id}/achievements/evaluate", response_model=EvaluateResponse)
async def evaluate_achievements(
    user_id: int,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Re-check every badge after profile-owned fields changed."""
    if not caller.may_act_for(user_id):
        raise ForbiddenError("Cannot evaluate achievements for another user")
    new_badges = await reevaluate_badges(db, redis, user_id)
    return EvaluateResponse(user_id=user_id, new_badges=_awarded(new_badges))


# ── Public catalog ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_all_badges(db: AsyncSession = Depends(get_session)):
    """Get the badge catalog in display order."""
    badges = await list_badges(db)
    return AllBadgesResponse(badges=[_badge_response(b) for b in badges])


@router.get("/badges/{slug}", response_model=BadgeResponse)
async def get_badge(slug: str, db: AsyncSession = Depends(get_session)):
    """Get a single badge definition."""
    badge = await get_badge_by_slug(db, slug)
    if badge is None:
        raise HTTPException(status_code=404, detail="Badge not found")
    return _badge_response(badge)


# ── Progress ──


@router.get("/users/{user_id}/progress", response_model=UserProgressResponse)
async def user_progress(
    user_id: int,
    _caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Level, points, streak, counters and earned badges."""
    return await get_user_progress(db, user_id)


@router.get("/users/{user_id}/badges/{slug}/progress", response_model=BadgeProgressResponse)
async def badge_progress(
    user_id: int,
    slug: str,
    _caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Progress toward a single badge."""
    return await get_badge_progress(db, user_id, slug)


@router.get("/users/{user_id}/achievements/analytics", response_model=AchievementAnalyticsResponse)
async def achievement_analytics(
    user_id: int,
    _caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Badge breakdown by category and rarity, plus the latest awards."""
    return await get_achievement_analytics(db, user_id)
