"""Badge metrics and their resolution against the stat store.

Every badge criterion names a ``Metric``. ``resolve_metric`` reads the
metric's current value from a user's ``UserStats`` row or, for the
fields the accounts service owns, from the ``User`` row. The resolver
table is checked for completeness when this module is imported, so a
new metric without a resolver fails at startup instead of silently
never awarding.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from campus_connect.db.models import User, UserStats


class Metric(str, Enum):
    """Quantities a badge criterion can be measured against."""

    MENTORSHIP_SESSIONS = "mentorship_sessions"
    MENTOR_RATING = "mentor_rating"
    PROJECTS_CREATED = "projects_created"
    PROJECTS_COMPLETED = "projects_completed"
    EVENTS_ATTENDED = "events_attended"
    SKILL_COUNT = "skill_count"
    SKILL_ENDORSEMENTS = "skill_endorsements"
    TEAMS_JOINED = "teams_joined"
    TEAMS_LED = "teams_led"
    HACKATHON_WINS = "hackathon_wins"
    COMPETITION_WINS = "competition_wins"
    STUDENTS_HELPED = "students_helped"
    PERFECT_TEAM_RATINGS = "perfect_team_ratings"
    LEVEL = "level"
    CURRENT_STREAK = "current_streak"


_Resolver = Callable[[UserStats, User], float]

_RESOLVERS: dict[Metric, _Resolver] = {
    Metric.MENTORSHIP_SESSIONS: lambda stats, _user: stats.mentorship_sessions,
    Metric.MENTOR_RATING: lambda _stats, user: user.mentor_rating or 0.0,
    Metric.PROJECTS_CREATED: lambda stats, _user: stats.projects_created,
    Metric.PROJECTS_COMPLETED: lambda stats, _user: stats.projects_completed,
    Metric.EVENTS_ATTENDED: lambda stats, _user: stats.events_attended,
    Metric.SKILL_COUNT: lambda _stats, user: len(user.skills or []),
    Metric.SKILL_ENDORSEMENTS: lambda stats, _user: stats.skill_endorsements,
    Metric.TEAMS_JOINED: lambda stats, _user: stats.teams_joined,
    Metric.TEAMS_LED: lambda stats, _user: stats.teams_led,
    Metric.HACKATHON_WINS: lambda stats, _user: stats.hackathon_wins,
    Metric.COMPETITION_WINS: lambda stats, _user: stats.competition_wins,
    Metric.STUDENTS_HELPED: lambda _stats, user: user.students_helped or 0,
    Metric.PERFECT_TEAM_RATINGS: lambda _stats, user: user.perfect_team_ratings or 0,
    Metric.LEVEL: lambda stats, _user: stats.level,
    Metric.CURRENT_STREAK: lambda stats, _user: stats.current_streak,
}

_missing = set(Metric) - set(_RESOLVERS)
if _missing:
    msg = f"No resolver for metrics: {sorted(m.value for m in _missing)}"
    raise RuntimeError(msg)

# Metrics that can move on any activity, whatever its kind
ALWAYS_EVALUATED: frozenset[Metric] = frozenset({Metric.LEVEL, Metric.CURRENT_STREAK})


def resolve_metric(metric: Metric | str, stats: UserStats, user: User) -> float:
    """Return the current value of ``metric`` for a user.

    Raises ValueError for a name that is not a ``Metric``.
    """
    return float(_RESOLVERS[Metric(metric)](stats, user))
