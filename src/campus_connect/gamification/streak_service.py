"""Daily activity streaks.

Streaks count consecutive UTC calendar days with at least one activity:

- same day as the last activity: unchanged
- exactly one day later: +1
- two or more days later: reset to 1

``longest`` is the running maximum of ``current``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone

STREAK_MILESTONES: tuple[int, ...] = (7, 14, 30, 50, 100)


@dataclass(frozen=True)
class StreakState:
    current: int
    longest: int
    last_activity: datetime | None


def _utc_day(dt: datetime) -> date:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).date()


def compute_streak(
    current: int,
    longest: int,
    last_activity: datetime | None,
    now: datetime,
) -> StreakState:
    """Apply one activity at ``now`` to a streak. Pure function."""
    if last_activity is None:
        new_current = 1
        new_last = now
    else:
        gap_days = (_utc_day(now) - _utc_day(last_activity)).days
        if gap_days <= 0:
            # Same day, or a late event older than the last recorded activity
            new_current = max(current, 1)
            new_last = max(last_activity, now)
        elif gap_days == 1:
            new_current = current + 1
            new_last = now
        else:
            new_current = 1
            new_last = now

    return StreakState(
        current=new_current,
        longest=max(longest, new_current),
        last_activity=new_last,
    )


def crossed_milestone(previous: int, current: int) -> int | None:
    """Return the streak milestone reached by moving from ``previous`` to ``current``, if any."""
    for milestone in STREAK_MILESTONES:
        if previous < milestone <= current:
            return milestone
    return None
