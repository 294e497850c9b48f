"""Stat store writes: counters, monthly buckets, streaks, points and level.

Every mutation is a single atomic SQL statement (``col = col + n``,
upsert-increment, or a compare-and-set on ``revision``), so concurrent
activities for the same user never lose updates. Callers own the
transaction; nothing here commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db.models import MonthlyStats, UserStats
from campus_connect.db.upsert import dialect_insert, insert_if_absent
from campus_connect.errors import ConcurrentUpdateError
from campus_connect.gamification.levels import compute_level
from campus_connect.gamification.streak_service import compute_streak

logger = logging.getLogger(__name__)

COUNTER_FIELDS = frozenset({
    "projects_created",
    "projects_completed",
    "events_attended",
    "mentorship_sessions",
    "skill_endorsements",
    "teams_joined",
    "teams_led",
    "hackathon_wins",
    "competition_wins",
})

MONTHLY_FIELDS = frozenset({"points", "projects", "events", "mentorships"})

# Badge category -> category score column credited with the badge's points
CATEGORY_SCORE_FIELDS: dict[str, str] = {
    "project": "project_score",
    "mentorship": "mentorship_score",
    "collaboration": "contribution_score",
}

STREAK_CAS_ATTEMPTS = 5

_stats_table = UserStats.__table__
_monthly_table = MonthlyStats.__table__


@dataclass(frozen=True)
class StreakUpdate:
    previous: int
    current: int
    longest: int


@dataclass(frozen=True)
class LevelChange:
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def month_key(now: datetime) -> str:
    """Return the 'YYYY-MM' bucket key for a timestamp (UTC)."""
    return now.astimezone(timezone.utc).strftime("%Y-%m")


async def ensure_stats(db: AsyncSession, user_id: int) -> bool:
    """Create the user's stats row if it does not exist. Returns True if created."""
    return await insert_if_absent(db, _stats_table, {"user_id": user_id}, index_elements=["user_id"])


async def get_stats(db: AsyncSession, user_id: int) -> UserStats | None:
    """Load a user's stats row, refreshing any stale identity-map copy."""
    result = await db.execute(
        select(UserStats)
        .where(UserStats.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_stats(db: AsyncSession, user_id: int) -> UserStats:
    """Get the stats row for a user, creating it lazily."""
    await ensure_stats(db, user_id)
    stats = await get_stats(db, user_id)
    if stats is None:
        msg = f"stats row for user {user_id} vanished after insert"
        raise RuntimeError(msg)
    return stats


async def increment_counter(db: AsyncSession, user_id: int, field: str, amount: int = 1) -> None:
    """Atomically add ``amount`` to one activity counter."""
    if field not in COUNTER_FIELDS:
        raise ValueError(f"Unknown stats counter: {field}")
    column = _stats_table.c[field]
    await db.execute(
        update(_stats_table)
        .where(_stats_table.c.user_id == user_id)
        .values({column: column + amount, _stats_table.c.updated_at: datetime.now(timezone.utc)})
    )


async def increment_monthly(db: AsyncSession, user_id: int, month: str, **increments: int) -> None:
    """Upsert-increment the user's bucket for ``month``.

    The first write of a month creates the bucket with the increments as
    its initial values; later writes add to it.
    """
    unknown = set(increments) - MONTHLY_FIELDS
    if unknown:
        raise ValueError(f"Unknown monthly stats fields: {sorted(unknown)}")
    if not increments:
        return

    stmt = dialect_insert(db, _monthly_table).values(user_id=user_id, month=month, **increments)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "month"],
        set_={name: _monthly_table.c[name] + stmt.excluded[name] for name in increments},
    )
    await db.execute(stmt)


async def update_streak(db: AsyncSession, user_id: int, now: datetime) -> StreakUpdate:
    """Record an activity at ``now`` against the user's streak.

    Reads the streak fields, computes the new values, and writes them only
    if ``revision`` is unchanged since the read. A lost race re-reads and
    retries; after ``STREAK_CAS_ATTEMPTS`` losses ConcurrentUpdateError is
    raised.
    """
    for attempt in range(1, STREAK_CAS_ATTEMPTS + 1):
        stats = await get_stats(db, user_id)
        if stats is None:
            msg = f"stats row for user {user_id} does not exist"
            raise RuntimeError(msg)

        new_state = compute_streak(stats.current_streak, stats.longest_streak, stats.last_activity, now)
        result = await db.execute(
            update(_stats_table)
            .where(
                _stats_table.c.user_id == user_id,
                _stats_table.c.revision == stats.revision,
            )
            .values(
                current_streak=new_state.current,
                longest_streak=new_state.longest,
                last_activity=new_state.last_activity,
                revision=stats.revision + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        if result.rowcount == 1:
            return StreakUpdate(
                previous=stats.current_streak,
                current=new_state.current,
                longest=new_state.longest,
            )
        logger.debug("Streak CAS conflict for user %s (attempt %d)", user_id, attempt)

    raise ConcurrentUpdateError(f"Streak update for user {user_id} kept conflicting")


async def sync_level(db: AsyncSession, user_id: int) -> LevelChange:
    """Recompute ``level`` from ``total_points`` and store it if it moved."""
    stats = await get_stats(db, user_id)
    if stats is None:
        msg = f"stats row for user {user_id} does not exist"
        raise RuntimeError(msg)

    old_level = stats.level
    new_level = compute_level(stats.total_points)
    if new_level != old_level:
        await db.execute(
            update(_stats_table)
            .where(_stats_table.c.user_id == user_id)
            .values(level=new_level, updated_at=datetime.now(timezone.utc))
        )
        stats.level = new_level
    return LevelChange(old_level=old_level, new_level=new_level)


async def apply_points(
    db: AsyncSession,
    user_id: int,
    points: int,
    category: str,
    now: datetime,
) -> LevelChange:
    """Credit badge points: total, category score, monthly bucket, then level."""
    values = {
        _stats_table.c.total_points: _stats_table.c.total_points + points,
        _stats_table.c.updated_at: now,
    }
    score_field = CATEGORY_SCORE_FIELDS.get(category)
    if score_field is not None:
        column = _stats_table.c[score_field]
        values[column] = column + points

    await db.execute(update(_stats_table).where(_stats_table.c.user_id == user_id).values(values))
    await increment_monthly(db, user_id, month_key(now), points=points)
    return await sync_level(db, user_id)
