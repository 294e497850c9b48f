"""Leaderboard builder — materialized ranking snapshots per (type, period).

Each rebuild recomputes scores from the stat store, sorts them by score
descending with user id ascending as the tie-break, keeps the top
``leaderboard_size`` entries and overwrites the board's row. Rebuilding
twice over unchanged data produces identical rankings.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import get_settings
from campus_connect.db.models import Achievement, Badge, Leaderboard, MonthlyStats, User, UserStats
from campus_connect.db.upsert import dialect_insert
from campus_connect.gamification.stats_service import month_key
from campus_connect.notifications.notification_push import publish_event
from campus_connect.notifications.notification_service import create_notification

logger = logging.getLogger(__name__)

ALL_TIME = "all-time"
MONTHLY = "monthly"
WEEKLY = "weekly"

NOTIFY_TOP_N = 10
WEEKLY_WINDOW = timedelta(days=7)

# (user_id, score, metadata)
ScoreRow = tuple[int, float, dict[str, Any]]
_Scorer = Callable[[AsyncSession, datetime], Awaitable[list[ScoreRow]]]


def _number(value: float) -> float | int:
    """Keep integral scores as ints in stored rankings."""
    return int(value) if float(value).is_integer() else round(float(value), 4)


def rank_entries(rows: Iterable[ScoreRow], limit: int) -> list[dict[str, Any]]:
    """Sort by score descending then user id ascending, truncate, assign 1-based ranks."""
    ordered = sorted(rows, key=lambda row: (-row[1], row[0]))[:limit]
    return [
        {
            "user_id": user_id,
            "score": _number(score),
            "rank": index + 1,
            "metadata": metadata,
        }
        for index, (user_id, score, metadata) in enumerate(ordered)
    ]


# ---------------------------------------------------------------------------
# Scorers
# ---------------------------------------------------------------------------


async def _score_projects_all_time(db: AsyncSession, _now: datetime) -> list[ScoreRow]:
    result = await db.execute(
        select(UserStats.user_id, UserStats.projects_created, UserStats.projects_completed)
        .join(User, User.id == UserStats.user_id)
    )
    return [
        (
            row.user_id,
            row.projects_created + 2 * row.projects_completed,
            {"projects_count": row.projects_created + row.projects_completed},
        )
        for row in result
    ]


async def _score_contributions_all_time(db: AsyncSession, _now: datetime) -> list[ScoreRow]:
    result = await db.execute(
        select(UserStats.user_id, UserStats.contribution_score)
        .join(User, User.id == UserStats.user_id)
    )
    return [
        (row.user_id, row.contribution_score, {"contribution_score": row.contribution_score})
        for row in result
    ]


async def _score_mentorship_all_time(db: AsyncSession, _now: datetime) -> list[ScoreRow]:
    result = await db.execute(
        select(UserStats.user_id, UserStats.mentorship_sessions, User.mentor_rating)
        .join(User, User.id == UserStats.user_id)
    )
    return [
        (
            row.user_id,
            row.mentorship_sessions * (row.mentor_rating or 0.0),
            {"mentor_rating": row.mentor_rating or 0.0, "sessions": row.mentorship_sessions},
        )
        for row in result
    ]


async def _score_overall_all_time(db: AsyncSession, _now: datetime) -> list[ScoreRow]:
    badge_counts = (
        select(Achievement.user_id, func.count(Achievement.id).label("badges_count"))
        .group_by(Achievement.user_id)
        .subquery()
    )
    result = await db.execute(
        select(UserStats.user_id, UserStats.total_points, badge_counts.c.badges_count)
        .join(User, User.id == UserStats.user_id)
        .outerjoin(badge_counts, badge_counts.c.user_id == UserStats.user_id)
    )
    return [
        (row.user_id, row.total_points, {"badges_count": row.badges_count or 0})
        for row in result
    ]


def _monthly_scorer(field: str, weight_by_rating: bool = False) -> _Scorer:
    async def score(db: AsyncSession, now: datetime) -> list[ScoreRow]:
        result = await db.execute(
            select(MonthlyStats.user_id, getattr(MonthlyStats, field).label("value"), User.mentor_rating)
            .join(User, User.id == MonthlyStats.user_id)
            .where(MonthlyStats.month == month_key(now))
        )
        rows: list[ScoreRow] = []
        for row in result:
            value = row.value * (row.mentor_rating or 0.0) if weight_by_rating else row.value
            rows.append((row.user_id, value, {field: row.value}))
        return rows

    return score


def _weekly_badge_scorer(category: str | None, sum_points: bool) -> _Scorer:
    """Score achievements earned in the trailing 7 days; users scoring 0 are left out."""

    async def score(db: AsyncSession, now: datetime) -> list[ScoreRow]:
        value = func.sum(Badge.points) if sum_points else func.count(Achievement.id)
        stmt = (
            select(Achievement.user_id, value.label("value"))
            .join(Badge, Badge.id == Achievement.badge_id)
            .join(User, User.id == Achievement.user_id)
            .where(Achievement.earned_at >= now - WEEKLY_WINDOW)
            .group_by(Achievement.user_id)
        )
        if category is not None:
            stmt = stmt.where(Badge.category == category)
        result = await db.execute(stmt)
        return [(row.user_id, row.value, {}) for row in result if row.value and row.value > 0]

    return score


BOARD_SCORERS: dict[tuple[str, str], _Scorer] = {
    ("projects", ALL_TIME): _score_projects_all_time,
    ("contributions", ALL_TIME): _score_contributions_all_time,
    ("mentorship", ALL_TIME): _score_mentorship_all_time,
    ("overall", ALL_TIME): _score_overall_all_time,
    ("monthly", MONTHLY): _monthly_scorer("points"),
    ("projects", MONTHLY): _monthly_scorer("projects"),
    ("mentorship", MONTHLY): _monthly_scorer("mentorships", weight_by_rating=True),
    ("projects", WEEKLY): _weekly_badge_scorer("project", sum_points=False),
    ("contributions", WEEKLY): _weekly_badge_scorer(None, sum_points=True),
    ("mentorship", WEEKLY): _weekly_badge_scorer("mentorship", sum_points=False),
}

SUPPORTED_BOARDS: frozenset[tuple[str, str]] = frozenset(BOARD_SCORERS)

# Boards whose scores can move when a badge of the given category is awarded
_CATEGORY_BOARDS: dict[str, tuple[tuple[str, str], ...]] = {
    "project": (("projects", ALL_TIME), ("projects", MONTHLY), ("projects", WEEKLY)),
    "mentorship": (("mentorship", ALL_TIME), ("mentorship", MONTHLY), ("mentorship", WEEKLY)),
    "collaboration": (("contributions", ALL_TIME),),
}
_AWARD_BOARDS: tuple[tuple[str, str], ...] = (
    ("overall", ALL_TIME),
    ("monthly", MONTHLY),
    ("contributions", WEEKLY),
)


def validate_board(type_: str, period: str) -> None:
    if (type_, period) not in BOARD_SCORERS:
        supported = ", ".join(f"{t}/{p}" for t, p in sorted(SUPPORTED_BOARDS))
        raise ValueError(f"Unsupported leaderboard {type_}/{period}. Supported: {supported}")


def boards_for_categories(categories: Iterable[str]) -> list[tuple[str, str]]:
    """Boards to refresh after awarding badges in ``categories`` (deduplicated, stable order)."""
    boards: list[tuple[str, str]] = []
    for category in sorted(set(categories)):
        for board in _CATEGORY_BOARDS.get(category, ()):
            if board not in boards:
                boards.append(board)
    for board in _AWARD_BOARDS:
        if board not in boards:
            boards.append(board)
    return boards


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------


async def _get_board(db: AsyncSession, type_: str, period: str) -> Leaderboard | None:
    result = await db.execute(
        select(Leaderboard)
        .where(Leaderboard.type == type_, Leaderboard.period == period)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def rebuild_leaderboard(
    db: AsyncSession,
    redis: object,
    type_: str,
    period: str,
    now: datetime | None = None,
    notify: bool = True,
) -> list[dict[str, Any]]:
    """Recompute, overwrite and commit one board. Returns the new rankings.

    With ``notify`` set, users who entered or climbed the top 10 with a
    positive score get a leaderboard notification.
    """
    validate_board(type_, period)
    if now is None:
        now = datetime.now(timezone.utc)

    settings = get_settings()
    rows = await BOARD_SCORERS[(type_, period)](db, now)
    rankings = rank_entries(rows, settings.leaderboard_size)

    previous = await _get_board(db, type_, period)
    previous_ranks = {entry["user_id"]: entry["rank"] for entry in (previous.rankings if previous else [])}

    table = Leaderboard.__table__
    stmt = dialect_insert(db, table).values(type=type_, period=period, rankings=rankings, last_updated=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=["type", "period"],
        set_={"rankings": stmt.excluded.rankings, "last_updated": stmt.excluded.last_updated},
    )
    await db.execute(stmt)

    if notify:
        await _notify_climbers(db, redis, type_, period, rankings, previous_ranks)
    await db.commit()

    await publish_event(redis, "pubsub:leaderboard_updated", {
        "type": type_,
        "period": period,
        "entries": len(rankings),
        "last_updated": now.isoformat(),
    })
    logger.info("Rebuilt leaderboard %s/%s with %d entries", type_, period, len(rankings))
    return rankings


async def _notify_climbers(
    db: AsyncSession,
    redis: object,
    type_: str,
    period: str,
    rankings: list[dict[str, Any]],
    previous_ranks: dict[int, int],
) -> None:
    """Tell users who entered the top 10 or moved up within it."""
    for entry in rankings[:NOTIFY_TOP_N]:
        if entry["score"] <= 0:
            continue
        old_rank = previous_ranks.get(entry["user_id"])
        if old_rank is not None and old_rank <= entry["rank"]:
            continue
        await create_notification(
            db,
            entry["user_id"],
            "leaderboard",
            title="Leaderboard Update",
            message=f"You are now #{entry['rank']} on the {type_} ({period}) leaderboard!",
            metadata={
                "type": type_,
                "period": period,
                "rank": entry["rank"],
                "previous_rank": old_rank,
                "score": entry["score"],
            },
            redis=redis,
        )


async def rebuild_all(db: AsyncSession, redis: object, now: datetime | None = None) -> dict[str, int]:
    """Rebuild every supported board. Returns entries per 'type/period'."""
    if now is None:
        now = datetime.now(timezone.utc)
    counts: dict[str, int] = {}
    for type_, period in sorted(SUPPORTED_BOARDS):
        rankings = await rebuild_leaderboard(db, redis, type_, period, now=now)
        counts[f"{type_}/{period}"] = len(rankings)
    return counts


async def refresh_for_categories(
    db: AsyncSession,
    redis: object,
    categories: Iterable[str],
    now: datetime | None = None,
) -> list[tuple[str, str]]:
    """Rebuild the boards affected by newly awarded badges, without climb notifications."""
    boards = boards_for_categories(categories)
    for type_, period in boards:
        await rebuild_leaderboard(db, redis, type_, period, now=now, notify=False)
    return boards


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def _get_user_names(db: AsyncSession, user_ids: list[int]) -> dict[int, str]:
    if not user_ids:
        return {}
    result = await db.execute(select(User.id, User.name).where(User.id.in_(user_ids)))
    return {row.id: row.name for row in result}


async def get_leaderboard(
    db: AsyncSession,
    type_: str,
    period: str = ALL_TIME,
    limit: int = 50,
) -> dict[str, Any]:
    """Read a stored board, enriched with user names. A board never built returns empty rankings."""
    validate_board(type_, period)
    board = await _get_board(db, type_, period)
    if board is None:
        return {"type": type_, "period": period, "last_updated": None, "rankings": []}

    rankings = board.rankings[:limit]
    names = await _get_user_names(db, [entry["user_id"] for entry in rankings])
    return {
        "type": type_,
        "period": period,
        "last_updated": board.last_updated,
        "rankings": [
            {**entry, "name": names.get(entry["user_id"])}
            for entry in rankings
        ],
    }


async def get_user_rank(
    db: AsyncSession,
    user_id: int,
    type_: str,
    period: str = ALL_TIME,
) -> dict[str, Any] | None:
    """Return ``{rank, score}`` for a user on a board, or None if unranked."""
    validate_board(type_, period)
    board = await _get_board(db, type_, period)
    if board is None:
        return None
    for entry in board.rankings:
        if entry["user_id"] == user_id:
            return {"rank": entry["rank"], "score": entry["score"]}
    return None


async def get_user_rankings(db: AsyncSession, user_id: int) -> dict[str, dict[str, Any] | None]:
    """The user's position on every all-time board."""
    return {
        type_: await get_user_rank(db, user_id, type_, ALL_TIME)
        for type_, period in sorted(SUPPORTED_BOARDS)
        if period == ALL_TIME
    }


async def get_top_performers(db: AsyncSession, limit: int = 10) -> dict[str, list[dict[str, Any]]]:
    """Top entries of the projects, contributions and mentorship all-time boards."""
    summary: dict[str, list[dict[str, Any]]] = {}
    for type_ in ("projects", "contributions", "mentorship"):
        board = await get_leaderboard(db, type_, ALL_TIME, limit)
        summary[type_] = board["rankings"]
    return summary
