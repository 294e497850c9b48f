"""Read-side summaries: user progress, per-badge progress, achievement analytics."""

from __future__ import annotations

from collections import Counter
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db.models import User, UserStats
from campus_connect.errors import NotFoundError
from campus_connect.gamification.badge_service import get_badge_by_slug, get_user_achievements, list_badges
from campus_connect.gamification.levels import level_progress
from campus_connect.gamification.metrics import resolve_metric
from campus_connect.gamification.stats_cache import get_stats_cache
from campus_connect.gamification.stats_service import COUNTER_FIELDS, get_stats

RECENT_ACHIEVEMENTS = 5


async def _load_user_and_stats(db: AsyncSession, user_id: int) -> tuple[User, UserStats]:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    stats = await get_stats(db, user_id)
    if stats is None:
        # Never tracked: report zeroed stats without creating a row
        stats = UserStats(
            user_id=user_id,
            level=1,
            total_points=0,
            contribution_score=0,
            project_score=0,
            mentorship_score=0,
            current_streak=0,
            longest_streak=0,
            last_activity=None,
            **{name: 0 for name in COUNTER_FIELDS},
        )
    return user, stats


async def get_user_progress(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Level, points, streaks, per-area counters and earned badges. Served from the stats cache."""
    cache = get_stats_cache()
    cached = cache.get(user_id)
    if cached is not None:
        return cached
    generation = cache.generation(user_id)

    _user, stats = await _load_user_and_stats(db, user_id)
    achievements = await get_user_achievements(db, user_id)
    progress = {
        "user_id": user_id,
        **level_progress(stats.total_points),
        "badges": [
            {
                "slug": badge.slug,
                "name": badge.name,
                "icon": badge.icon,
                "category": badge.category,
                "rarity": badge.rarity,
                "points": badge.points,
                "earned_at": achievement.earned_at,
            }
            for achievement, badge in achievements
        ],
        "streaks": {
            "current": stats.current_streak,
            "longest": stats.longest_streak,
            "last_activity": stats.last_activity,
        },
        "stats": {
            "projects_created": stats.projects_created,
            "projects_completed": stats.projects_completed,
            "events_attended": stats.events_attended,
            "mentorship_sessions": stats.mentorship_sessions,
            "skill_endorsements": stats.skill_endorsements,
            "teams_joined": stats.teams_joined,
            "teams_led": stats.teams_led,
            "hackathon_wins": stats.hackathon_wins,
            "competition_wins": stats.competition_wins,
            "contribution_score": stats.contribution_score,
            "project_score": stats.project_score,
            "mentorship_score": stats.mentorship_score,
        },
    }
    cache.set(user_id, progress, generation=generation)
    return progress


async def get_badge_progress(db: AsyncSession, user_id: int, slug: str) -> dict[str, Any]:
    """How far a user is toward one badge."""
    badge = await get_badge_by_slug(db, slug)
    if badge is None:
        raise NotFoundError(f"Badge {slug} not found")
    user, stats = await _load_user_and_stats(db, user_id)

    earned = next(
        (achievement for achievement, earned_badge in await get_user_achievements(db, user_id)
         if earned_badge.id == badge.id),
        None,
    )
    current = resolve_metric(badge.criteria_metric, stats, user)
    target = badge.criteria_target
    percentage = 100.0 if earned is not None else min(100.0, current / target * 100.0 if target else 100.0)
    return {
        "slug": badge.slug,
        "name": badge.name,
        "metric": badge.criteria_metric,
        "current": current,
        "target": target,
        "percentage": round(percentage, 2),
        "earned": earned is not None,
        "earned_at": earned.earned_at if earned is not None else None,
    }


async def get_achievement_analytics(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Badge counts by category and rarity, completion rate and the most recent awards."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    achievements = await get_user_achievements(db, user_id)
    catalog = await list_badges(db)

    by_category = Counter(badge.category for _achievement, badge in achievements)
    by_rarity = Counter(badge.rarity for _achievement, badge in achievements)
    total_points = sum(badge.points for _achievement, badge in achievements)
    return {
        "user_id": user_id,
        "total_badges": len(achievements),
        "available_badges": len(catalog),
        "completion_rate": round(len(achievements) / len(catalog) * 100.0, 2) if catalog else 0.0,
        "badge_points": total_points,
        "by_category": dict(sorted(by_category.items())),
        "by_rarity": dict(sorted(by_rarity.items())),
        "recent": [
            {"slug": badge.slug, "name": badge.name, "earned_at": achievement.earned_at}
            for achievement, badge in achievements[:RECENT_ACHIEVEMENTS]
        ],
    }
