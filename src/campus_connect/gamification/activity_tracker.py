"""Activity tracker — the single entry point for recording user activity.

``track_activity`` commits the stat update first. Badge evaluation and
leaderboard refresh follow as separate, best-effort steps: if either
fails, the stat update stays committed and the failure is logged and
reported on the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import get_settings
from campus_connect.db.models import Badge, User, UserStats
from campus_connect.errors import NotFoundError
from campus_connect.gamification.badge_service import BadgeEvaluator
from campus_connect.gamification.metrics import Metric
from campus_connect.gamification.stats_cache import get_stats_cache
from campus_connect.gamification.stats_service import (
    StreakUpdate,
    ensure_stats,
    get_stats,
    increment_counter,
    increment_monthly,
    month_key,
    sync_level,
    update_streak,
)
from campus_connect.gamification.streak_service import crossed_milestone
from campus_connect.leaderboard.leaderboard_service import refresh_for_categories
from campus_connect.notifications.notification_service import create_notification

logger = logging.getLogger(__name__)


class ActivityKind(str, Enum):
    PROJECT_CREATED = "project_created"
    PROJECT_COMPLETED = "project_completed"
    EVENT_ATTENDED = "event_attended"
    MENTORSHIP_SESSION = "mentorship_session"
    SKILL_ENDORSED = "skill_endorsed"
    TEAM_JOINED = "team_joined"
    TEAM_LED = "team_led"
    HACKATHON_WON = "hackathon_won"
    COMPETITION_WON = "competition_won"


@dataclass(frozen=True)
class ActivityEffect:
    counter: str
    monthly_field: str | None
    metrics: frozenset[Metric]


ACTIVITY_EFFECTS: dict[ActivityKind, ActivityEffect] = {
    ActivityKind.PROJECT_CREATED: ActivityEffect(
        "projects_created", "projects", frozenset({Metric.PROJECTS_CREATED}),
    ),
    ActivityKind.PROJECT_COMPLETED: ActivityEffect(
        "projects_completed", "projects", frozenset({Metric.PROJECTS_COMPLETED}),
    ),
    ActivityKind.EVENT_ATTENDED: ActivityEffect(
        "events_attended", "events", frozenset({Metric.EVENTS_ATTENDED}),
    ),
    ActivityKind.MENTORSHIP_SESSION: ActivityEffect(
        "mentorship_sessions",
        "mentorships",
        frozenset({Metric.MENTORSHIP_SESSIONS, Metric.MENTOR_RATING, Metric.STUDENTS_HELPED}),
    ),
    ActivityKind.SKILL_ENDORSED: ActivityEffect(
        "skill_endorsements", None, frozenset({Metric.SKILL_ENDORSEMENTS, Metric.SKILL_COUNT}),
    ),
    ActivityKind.TEAM_JOINED: ActivityEffect(
        "teams_joined", None, frozenset({Metric.TEAMS_JOINED, Metric.PERFECT_TEAM_RATINGS}),
    ),
    ActivityKind.TEAM_LED: ActivityEffect("teams_led", None, frozenset({Metric.TEAMS_LED})),
    ActivityKind.HACKATHON_WON: ActivityEffect("hackathon_wins", None, frozenset({Metric.HACKATHON_WINS})),
    ActivityKind.COMPETITION_WON: ActivityEffect("competition_wins", None, frozenset({Metric.COMPETITION_WINS})),
}


@dataclass
class TrackResult:
    stats: UserStats | None = None
    new_badges: list[Badge] = field(default_factory=list)
    streak: StreakUpdate | None = None
    ignored: bool = False
    badge_evaluation_failed: bool = False
    leaderboard_refresh_failed: bool = False


async def track_activity(
    db: AsyncSession,
    redis: object,
    user_id: int,
    kind: ActivityKind | str,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> TrackResult:
    """Record one activity of ``kind`` for a user.

    1. Counter +1, monthly bucket, streak and level (committed together)
    2. Streak milestone notification and badge evaluation (best-effort)
    3. Refresh of leaderboards touched by new badges (best-effort)

    An unknown ``kind`` is logged and ignored with no side effects. An
    unknown user raises NotFoundError before anything is written.
    """
    try:
        activity = ActivityKind(kind)
    except ValueError:
        logger.warning("Ignoring unknown activity kind %r for user %s", kind, user_id)
        return TrackResult(ignored=True)

    if now is None:
        now = datetime.now(timezone.utc)

    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    effect = ACTIVITY_EFFECTS[activity]
    cache = get_stats_cache()

    await ensure_stats(db, user_id)
    await increment_counter(db, user_id, effect.counter)
    if effect.monthly_field is not None:
        await increment_monthly(db, user_id, month_key(now), **{effect.monthly_field: 1})
    streak = await update_streak(db, user_id, now)
    await sync_level(db, user_id)
    await db.commit()
    cache.invalidate(user_id)

    logger.debug(
        "Tracked %s for user %s (metadata=%s, streak=%d)",
        activity.value, user_id, metadata or {}, streak.current,
    )

    result = TrackResult(streak=streak)
    try:
        milestone = crossed_milestone(streak.previous, streak.current)
        if milestone is not None:
            await create_notification(
                db,
                user_id,
                "achievement",
                title=f"{milestone}-Day Streak!",
                message=f"\U0001f525 You've been active {milestone} days in a row. Keep it going!",
                metadata={"streak": streak.current, "milestone": milestone},
                redis=redis,
            )
        evaluator = BadgeEvaluator(db, redis)
        result.new_badges = await evaluator.evaluate(user_id, user=user, metrics=effect.metrics, now=now)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Badge evaluation failed for user %s after %s", user_id, activity.value)
        result.new_badges = []
        result.badge_evaluation_failed = True
    finally:
        cache.invalidate(user_id)

    if result.new_badges and get_settings().leaderboard_refresh_on_award:
        badge_ids = [badge.id for badge in result.new_badges]
        try:
            await refresh_for_categories(db, redis, {badge.category for badge in result.new_badges}, now=now)
        except Exception:
            await db.rollback()
            logger.exception("Leaderboard refresh failed after awards for user %s", user_id)
            result.leaderboard_refresh_failed = True
            # Rollback expired the awarded Badge instances
            reloaded = await db.execute(select(Badge).where(Badge.id.in_(badge_ids)))
            by_id = {badge.id: badge for badge in reloaded.scalars()}
            result.new_badges = [by_id[badge_id] for badge_id in badge_ids if badge_id in by_id]

    result.stats = await get_stats(db, user_id)
    return result


async def reevaluate_badges(db: AsyncSession, redis: object, user_id: int) -> list[Badge]:
    """Evaluate every badge for a user without recording an activity.

    Used when profile-owned metrics (skills, mentor rating, students
    helped, team ratings) change outside of an activity.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    await ensure_stats(db, user_id)
    evaluator = BadgeEvaluator(db, redis)
    try:
        new_badges = await evaluator.evaluate(user_id, user=user)
        await db.commit()
    finally:
        get_stats_cache().invalidate(user_id)

    if new_badges and get_settings().leaderboard_refresh_on_award:
        await refresh_for_categories(db, redis, {badge.category for badge in new_badges})
    return new_badges
