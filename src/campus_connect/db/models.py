"""ORM models for the Campus Connect achievement and scheduling core.

The ``users`` table is owned by the accounts service; it is mapped here
read-mostly so the metric resolver and leaderboards can join on it.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from campus_connect.db.base import Base, BigIntPK, JSONType, UTCDateTime

# Session statuses that hold a mentor's slot
ACTIVE_SESSION_STATUSES = ("scheduled", "confirmed")
ACTIVE_SESSION_PREDICATE = text("status IN ('scheduled', 'confirmed')")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student", server_default="student")
    skills: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list, server_default="[]")
    mentor_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    students_helped: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    perfect_team_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Stat store
# ---------------------------------------------------------------------------


class UserStats(Base):
    """Per-user activity counters, category scores, streak and level."""

    __tablename__ = "user_stats"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    projects_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    projects_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    events_attended: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    mentorship_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skill_endorsements: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    teams_joined: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    teams_led: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    hackathon_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    competition_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    contribution_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    project_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    mentorship_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_activity: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Bumped on every streak write; streak updates compare-and-set on it
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class MonthlyStats(Base):
    """One bucket per user per calendar month ('YYYY-MM')."""

    __tablename__ = "monthly_stats"
    __table_args__ = (UniqueConstraint("user_id", "month", name="uq_monthly_stats_user_month"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    projects: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    events: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    mentorships: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


# ---------------------------------------------------------------------------
# Badges & achievements
# ---------------------------------------------------------------------------


class Badge(Base):
    """Static badge catalog entry (seeded, immutable afterwards)."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, default="common", server_default="common")
    criteria_type: Mapped[str] = mapped_column(String(16), nullable=False)
    criteria_target: Mapped[float] = mapped_column(Float, nullable=False)
    criteria_metric: Mapped[str] = mapped_column(String(32), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class Achievement(Base):
    """A badge earned by a user. At most one row per (user, badge)."""

    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "badge_id", name="uq_achievements_user_badge"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    achievement_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict, server_default="{}",
    )


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------


class Leaderboard(Base):
    """Materialized ranking snapshot. One row per (type, period), fully overwritten."""

    __tablename__ = "leaderboards"
    __table_args__ = (UniqueConstraint("type", "period", name="uq_leaderboards_type_period"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    rankings: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list, server_default="[]")
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_read", "user_id", "read"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    notification_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict, server_default="{}",
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Mentorship scheduling
# ---------------------------------------------------------------------------


class MentorAvailability(Base):
    """A mentor's weekly slot template plus per-date exceptions."""

    __tablename__ = "mentor_availability"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    mentor_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False,
    )
    weekly_schedule: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list, server_default="[]",
    )
    exceptions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list, server_default="[]")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC", server_default="UTC")
    max_sessions_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=3, server_default="3")
    session_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=60, server_default="60")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class ScheduledSession(Base):
    """A booked mentorship session.

    ``slot_date``/``slot_start`` are in the mentor's timezone and back the
    partial unique index that prevents double booking.
    """

    __tablename__ = "scheduled_sessions"
    __table_args__ = (
        Index(
            "uq_scheduled_sessions_active_slot",
            "mentor_id",
            "slot_date",
            "slot_start",
            unique=True,
            postgresql_where=ACTIVE_SESSION_PREDICATE,
            sqlite_where=ACTIVE_SESSION_PREDICATE,
        ),
        Index("ix_scheduled_sessions_mentee", "mentee_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    mentor_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    mentee_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_start: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=60, server_default="60")
    meeting_type: Mapped[str] = mapped_column(String(16), nullable=False, default="online", server_default="online")
    meeting_link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    location: Mapped[str | None] = mapped_column(String(256), nullable=True)
    agenda: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="scheduled", server_default="scheduled")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    feedback: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict, server_default="{}")
    reschedule_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list, server_default="[]",
    )
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
