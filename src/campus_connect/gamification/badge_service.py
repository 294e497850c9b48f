"""Badge awarding and evaluation.

An award is an insert-if-absent on ``achievements(user_id, badge_id)``.
Only the call that actually inserts the row credits points, moves the
level and records notifications; a repeated award is reported as
``AwardOutcome.ALREADY_EARNED`` and changes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db.models import Achievement, Badge, User, UserStats
from campus_connect.db.upsert import insert_if_absent
from campus_connect.errors import NotFoundError
from campus_connect.gamification.metrics import ALWAYS_EVALUATED, Metric, resolve_metric
from campus_connect.gamification.stats_service import LevelChange, apply_points, get_or_create_stats, get_stats
from campus_connect.notifications.notification_push import publish_event
from campus_connect.notifications.notification_service import create_notification

logger = logging.getLogger(__name__)


class AwardOutcome(str, Enum):
    AWARDED = "awarded"
    ALREADY_EARNED = "already_earned"


@dataclass(frozen=True)
class AwardResult:
    outcome: AwardOutcome
    level_change: LevelChange | None = None

    @property
    def awarded(self) -> bool:
        return self.outcome is AwardOutcome.AWARDED


async def get_badge_by_slug(db: AsyncSession, slug: str) -> Badge | None:
    """Fetch a catalog badge by slug."""
    result = await db.execute(select(Badge).where(Badge.slug == slug))
    return result.scalar_one_or_none()


async def list_badges(db: AsyncSession) -> list[Badge]:
    """All active catalog badges in display order."""
    result = await db.execute(
        select(Badge).where(Badge.is_active.is_(True)).order_by(Badge.sort_order, Badge.id)
    )
    return list(result.scalars().all())


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(Achievement.id).where(
            Achievement.user_id == user_id,
            Achievement.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def get_earned_badge_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(select(Achievement.badge_id).where(Achievement.user_id == user_id))
    return set(result.scalars().all())


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[tuple[Achievement, Badge]]:
    """Earned achievements with their badges, most recent first."""
    result = await db.execute(
        select(Achievement, Badge)
        .join(Badge, Badge.id == Achievement.badge_id)
        .where(Achievement.user_id == user_id)
        .order_by(Achievement.earned_at.desc(), Achievement.id.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def award_badge(
    db: AsyncSession,
    redis: object,
    user_id: int,
    badge: Badge,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> AwardResult:
    """Award ``badge`` to a user at most once.

    On first award:
    1. Insert the achievement (unique on user + badge)
    2. Credit points to total, category score and monthly bucket
    3. Recompute level
    4. Record badge (and level-up) notifications
    """
    if now is None:
        now = datetime.now(timezone.utc)

    inserted = await insert_if_absent(
        db,
        Achievement.__table__,
        {
            "user_id": user_id,
            "badge_id": badge.id,
            "earned_at": now,
            "progress": badge.criteria_target,
            "is_completed": True,
            "metadata": metadata or {},
        },
        index_elements=["user_id", "badge_id"],
    )
    if not inserted:
        return AwardResult(outcome=AwardOutcome.ALREADY_EARNED)

    level_change = await apply_points(db, user_id, badge.points, badge.category, now)

    await _emit_badge_earned(db, redis, user_id, badge)
    if level_change.leveled_up:
        await _emit_level_up(db, redis, user_id, level_change)

    logger.info("Awarded badge %s to user %s (+%d points)", badge.slug, user_id, badge.points)
    return AwardResult(outcome=AwardOutcome.AWARDED, level_change=level_change)


async def _emit_badge_earned(db: AsyncSession, redis: object, user_id: int, badge: Badge) -> None:
    """Record the badge notification and broadcast the raw event."""
    await create_notification(
        db,
        user_id,
        "achievement",
        title=f"Badge Earned: {badge.name}",
        message=f"{badge.icon} {badge.description} (+{badge.points} points)",
        metadata={
            "badge_id": badge.id,
            "badge_slug": badge.slug,
            "badge_name": badge.name,
            "rarity": badge.rarity,
            "points": badge.points,
        },
        redis=redis,
    )
    await publish_event(redis, "pubsub:badge_earned", {
        "user_id": user_id,
        "badge_slug": badge.slug,
        "badge_name": badge.name,
        "rarity": badge.rarity,
        "points": badge.points,
    })


async def _emit_level_up(db: AsyncSession, redis: object, user_id: int, change: LevelChange) -> None:
    await create_notification(
        db,
        user_id,
        "achievement",
        title="Level Up!",
        message=f"Congratulations! You reached level {change.new_level}.",
        metadata={"old_level": change.old_level, "new_level": change.new_level},
        redis=redis,
    )
    await publish_event(redis, "pubsub:level_up", {
        "user_id": user_id,
        "old_level": change.old_level,
        "new_level": change.new_level,
    })


class BadgeEvaluator:
    """Evaluates a user's unearned badges against current stats."""

    def __init__(self, db: AsyncSession, redis: object) -> None:
        self.db = db
        self.redis = redis
        self._by_metric: dict[Metric, list[Badge]] | None = None

    async def _load_catalog(self) -> dict[Metric, list[Badge]]:
        """Load and cache active badges, indexed by the metric they measure."""
        if self._by_metric is None:
            by_metric: dict[Metric, list[Badge]] = {metric: [] for metric in Metric}
            for badge in await list_badges(self.db):
                try:
                    metric = Metric(badge.criteria_metric)
                except ValueError:
                    logger.warning("Badge %s has unknown metric %r", badge.slug, badge.criteria_metric)
                    continue
                by_metric[metric].append(badge)
            self._by_metric = by_metric
        return self._by_metric

    async def evaluate(
        self,
        user_id: int,
        stats: UserStats | None = None,
        user: User | None = None,
        metrics: Iterable[Metric] | None = None,
        now: datetime | None = None,
    ) -> list[Badge]:
        """Award every unearned badge whose criterion is met. Returns the newly awarded badges.

        ``metrics`` narrows evaluation to badges measured by those metrics
        (level and streak badges are always included). When an award
        raises the level, level badges are evaluated again.
        """
        if user is None:
            user = await self.db.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
        if stats is None:
            stats = await get_or_create_stats(self.db, user_id)

        by_metric = await self._load_catalog()
        earned = await get_earned_badge_ids(self.db, user_id)
        candidates = set(Metric) if metrics is None else set(metrics) | ALWAYS_EVALUATED

        awarded: list[Badge] = []
        while candidates:
            level_rose = False
            for metric in sorted(candidates, key=lambda m: m.value):
                value = resolve_metric(metric, stats, user)
                for badge in by_metric[metric]:
                    if badge.id in earned or value < badge.criteria_target:
                        continue
                    result = await award_badge(
                        self.db, self.redis, user_id, badge,
                        metadata={"value": value}, now=now,
                    )
                    earned.add(badge.id)
                    if result.awarded:
                        awarded.append(badge)
                        if result.level_change is not None and result.level_change.leveled_up:
                            level_rose = True

            if not level_rose:
                break
            stats = await get_stats(self.db, user_id) or stats
            candidates = {Metric.LEVEL}

        return awarded
