"""Mentorship session booking, rescheduling, status changes and feedback.

Double booking is prevented by the partial unique index on
``scheduled_sessions(mentor_id, slot_date, slot_start)`` over active
statuses. Bookings re-check the slot when writing and insert through
``ON CONFLICT DO NOTHING``, so of two mentees racing for one slot the
second receives ``BookingError.SLOT_ALREADY_BOOKED``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db.models import (
    ACTIVE_SESSION_PREDICATE,
    ACTIVE_SESSION_STATUSES,
    MentorAvailability,
    ScheduledSession,
    User,
)
from campus_connect.db.upsert import insert_if_absent
from campus_connect.errors import ForbiddenError, NotFoundError, ValidationError
from campus_connect.gamification.activity_tracker import ActivityKind, track_activity
from campus_connect.notifications.notification_service import create_notification
from campus_connect.scheduling.availability_service import (
    get_availability,
    get_booked_starts,
    resolve_day_slots,
    suggest_alternative_slots,
    to_mentor_local,
)
from campus_connect.scheduling.schemas import SuggestedSlot

logger = logging.getLogger(__name__)

# Allowed status moves; completed and cancelled are terminal
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "scheduled": frozenset({"confirmed", "completed", "cancelled"}),
    "confirmed": frozenset({"completed", "cancelled"}),
    "rescheduled": frozenset({"confirmed", "completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}
MENTOR_ONLY_STATUSES = frozenset({"confirmed", "completed"})


class BookingError(str, Enum):
    AVAILABILITY_NOT_SET = "availability_not_set"
    SLOT_UNAVAILABLE = "slot_unavailable"
    SLOT_ALREADY_BOOKED = "slot_already_booked"
    DAILY_LIMIT_REACHED = "daily_limit_reached"


BOOKING_MESSAGES: dict[BookingError, str] = {
    BookingError.AVAILABILITY_NOT_SET: "Mentor has not configured availability",
    BookingError.SLOT_UNAVAILABLE: "The mentor is not available at that time",
    BookingError.SLOT_ALREADY_BOOKED: "That slot is already booked",
    BookingError.DAILY_LIMIT_REACHED: "The mentor has no sessions left that day",
}


@dataclass
class BookingResult:
    ok: bool
    session: ScheduledSession | None = None
    error: BookingError | None = None
    alternatives: list[SuggestedSlot] = field(default_factory=list)

    @property
    def message(self) -> str | None:
        return BOOKING_MESSAGES[self.error] if self.error is not None else None


@dataclass(frozen=True)
class _SlotCheck:
    slot_date: date
    slot_start: str
    error: BookingError | None


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def get_session_by_id(db: AsyncSession, session_id: int) -> ScheduledSession:
    result = await db.execute(
        select(ScheduledSession)
        .where(ScheduledSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise NotFoundError(f"Session {session_id} not found")
    return session


def _require_participant(session: ScheduledSession, actor_id: int) -> str:
    """Return the actor's role on the session, or raise ForbiddenError."""
    if actor_id == session.mentor_id:
        return "mentor"
    if actor_id == session.mentee_id:
        return "mentee"
    raise ForbiddenError("Only the session's mentor or mentee may do that")


async def _check_slot(
    db: AsyncSession,
    availability: MentorAvailability,
    moment: datetime,
    exclude_session_id: int | None = None,
) -> _SlotCheck:
    """Check a requested start against the template, existing bookings and the daily limit."""
    local = to_mentor_local(availability, moment)
    slot_date = local.date()
    slot_start = local.strftime("%H:%M")

    slots = resolve_day_slots(availability.weekly_schedule, availability.exceptions, slot_date)
    if slot_start not in {slot.start_time for slot in slots}:
        return _SlotCheck(slot_date, slot_start, BookingError.SLOT_UNAVAILABLE)

    booked = await get_booked_starts(db, availability.mentor_id, slot_date, exclude_session_id)
    if slot_start in booked:
        return _SlotCheck(slot_date, slot_start, BookingError.SLOT_ALREADY_BOOKED)
    if len(booked) >= availability.max_sessions_per_day:
        return _SlotCheck(slot_date, slot_start, BookingError.DAILY_LIMIT_REACHED)
    return _SlotCheck(slot_date, slot_start, None)


async def _rejected(
    db: AsyncSession,
    mentor_id: int,
    error: BookingError,
    slot_date: date,
    slot_start: str,
) -> BookingResult:
    """A failed booking, with alternatives from the mentor's next open slots."""
    availability = await get_availability(db, mentor_id)
    alternatives: list[SuggestedSlot] = []
    if availability is not None:
        alternatives = await suggest_alternative_slots(
            db,
            availability,
            slot_date,
            exclude=(slot_date, slot_start),
            not_before=datetime.now(timezone.utc),
        )
    logger.info("Booking rejected for mentor %s at %s %s: %s", mentor_id, slot_date, slot_start, error.value)
    return BookingResult(ok=False, error=error, alternatives=alternatives)


async def schedule_session(
    db: AsyncSession,
    redis: object,
    mentor_id: int,
    mentee_id: int,
    scheduled_date: datetime,
    duration: int | None = None,
    meeting_type: str = "online",
    meeting_link: str | None = None,
    location: str | None = None,
    agenda: str | None = None,
) -> BookingResult:
    """Book a session in one of the mentor's open slots.

    ``scheduled_date`` without a timezone is read in the mentor's
    timezone. Expected conflicts come back as a failed BookingResult.
    """
    if mentor_id == mentee_id:
        raise ValidationError("A mentor cannot book a session with themselves")
    mentor = await _get_user(db, mentor_id)
    mentee = await _get_user(db, mentee_id)
    mentor_name, mentee_name = mentor.name, mentee.name

    availability = await get_availability(db, mentor_id)
    if availability is None:
        return BookingResult(ok=False, error=BookingError.AVAILABILITY_NOT_SET)

    check = await _check_slot(db, availability, scheduled_date)
    if check.error is not None:
        return await _rejected(db, mentor_id, check.error, check.slot_date, check.slot_start)

    now = datetime.now(timezone.utc)
    inserted = await insert_if_absent(
        db,
        ScheduledSession.__table__,
        {
            "mentor_id": mentor_id,
            "mentee_id": mentee_id,
            "scheduled_date": to_mentor_local(availability, scheduled_date).astimezone(timezone.utc),
            "slot_date": check.slot_date,
            "slot_start": check.slot_start,
            "duration": duration or availability.session_duration,
            "meeting_type": meeting_type,
            "meeting_link": meeting_link,
            "location": location,
            "agenda": agenda,
            "status": "scheduled",
            "created_at": now,
            "updated_at": now,
        },
        index_elements=["mentor_id", "slot_date", "slot_start"],
        index_where=ACTIVE_SESSION_PREDICATE,
    )
    if not inserted:
        await db.rollback()
        return await _rejected(db, mentor_id, BookingError.SLOT_ALREADY_BOOKED, check.slot_date, check.slot_start)

    result = await db.execute(
        select(ScheduledSession).where(
            ScheduledSession.mentor_id == mentor_id,
            ScheduledSession.slot_date == check.slot_date,
            ScheduledSession.slot_start == check.slot_start,
            ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
    )
    session = result.scalar_one()

    when = f"{check.slot_date.isoformat()} {check.slot_start}"
    await _notify(db, redis, mentor_id, "Session Scheduled",
                  f"New mentorship session with {mentee_name} on {when}", session)
    await _notify(db, redis, mentee_id, "Session Scheduled",
                  f"Your mentorship session with {mentor_name} is booked for {when}", session)
    await db.commit()

    logger.info("Session %s booked: mentor %s, mentee %s at %s", session.id, mentor_id, mentee_id, when)
    return BookingResult(ok=True, session=session)


async def reschedule_session(
    db: AsyncSession,
    redis: object,
    session_id: int,
    actor_id: int,
    new_date: datetime,
    reason: str,
) -> BookingResult:
    """Move an active session to another open slot, recording the move in its history.

    The session goes back to ``scheduled`` so the other party can confirm again.
    """
    session = await get_session_by_id(db, session_id)
    _require_participant(session, actor_id)
    if session.status not in ACTIVE_SESSION_STATUSES:
        raise ValidationError(f"Cannot reschedule a {session.status} session")

    mentor_id, mentee_id = session.mentor_id, session.mentee_id
    availability = await get_availability(db, mentor_id)
    if availability is None:
        return BookingResult(ok=False, error=BookingError.AVAILABILITY_NOT_SET)

    check = await _check_slot(db, availability, new_date, exclude_session_id=session.id)
    if check.error is not None:
        return await _rejected(db, mentor_id, check.error, check.slot_date, check.slot_start)

    now = datetime.now(timezone.utc)
    new_start = to_mentor_local(availability, new_date).astimezone(timezone.utc)
    session.reschedule_history = [
        *session.reschedule_history,
        {
            "original_date": session.scheduled_date.isoformat(),
            "new_date": new_start.isoformat(),
            "reason": reason,
            "rescheduled_by": actor_id,
            "rescheduled_at": now.isoformat(),
        },
    ]
    session.scheduled_date = new_start
    session.slot_date = check.slot_date
    session.slot_start = check.slot_start
    session.status = "scheduled"
    session.updated_at = now
    try:
        await db.flush()
    except IntegrityError:
        # Another booking took the slot between the check and this write
        await db.rollback()
        return await _rejected(db, mentor_id, BookingError.SLOT_ALREADY_BOOKED, check.slot_date, check.slot_start)

    other = mentee_id if actor_id == mentor_id else mentor_id
    await _notify(db, redis, other, "Session Rescheduled",
                  f"Your session moved to {check.slot_date.isoformat()} {check.slot_start}: {reason}", session)
    await db.commit()
    return BookingResult(ok=True, session=session)


async def update_session_status(
    db: AsyncSession,
    redis: object,
    session_id: int,
    actor_id: int,
    status: str,
    notes: str | None = None,
) -> ScheduledSession:
    """Confirm, complete or cancel a session.

    Completing a session records a ``mentorship_session`` activity for
    the mentor.
    """
    session = await get_session_by_id(db, session_id)
    role = _require_participant(session, actor_id)

    allowed = STATUS_TRANSITIONS.get(session.status, frozenset())
    if status not in allowed:
        raise ValidationError(f"Cannot change a {session.status} session to {status}")
    if status in MENTOR_ONLY_STATUSES and role != "mentor":
        raise ForbiddenError(f"Only the mentor can mark a session {status}")

    session.status = status
    if notes is not None:
        session.notes = notes
    session.updated_at = datetime.now(timezone.utc)

    other = session.mentee_id if role == "mentor" else session.mentor_id
    await _notify(db, redis, other, f"Session {status.capitalize()}",
                  f"Your session on {session.slot_date.isoformat()} {session.slot_start} was {status}", session)
    await db.commit()

    if status == "completed":
        await track_activity(
            db, redis, session.mentor_id, ActivityKind.MENTORSHIP_SESSION,
            metadata={"session_id": session.id, "mentee_id": session.mentee_id},
        )
        await db.refresh(session)
    return session


async def submit_feedback(
    db: AsyncSession,
    session_id: int,
    actor_id: int,
    comment: str,
    rating: int,
) -> ScheduledSession:
    """Store the caller's feedback for a completed session under their role."""
    session = await get_session_by_id(db, session_id)
    role = _require_participant(session, actor_id)
    if session.status != "completed":
        raise ValidationError("Feedback can only be left on completed sessions")

    session.feedback = {
        **session.feedback,
        role: {
            "comment": comment,
            "rating": rating,
            "submitted_at": datetime.now(timezone.utc).isoformat(),
        },
    }
    session.updated_at = datetime.now(timezone.utc)
    await db.commit()
    return session


async def list_sessions(
    db: AsyncSession,
    user_id: int,
    role: str | None = None,
    status: str | None = None,
    upcoming_only: bool = False,
) -> list[ScheduledSession]:
    """Sessions where the user is mentor and/or mentee, soonest first."""
    if role == "mentor":
        stmt = select(ScheduledSession).where(ScheduledSession.mentor_id == user_id)
    elif role == "mentee":
        stmt = select(ScheduledSession).where(ScheduledSession.mentee_id == user_id)
    else:
        stmt = select(ScheduledSession).where(
            or_(ScheduledSession.mentor_id == user_id, ScheduledSession.mentee_id == user_id)
        )
    if status is not None:
        stmt = stmt.where(ScheduledSession.status == status)
    if upcoming_only:
        stmt = stmt.where(
            ScheduledSession.scheduled_date >= datetime.now(timezone.utc),
            ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
    result = await db.execute(stmt.order_by(ScheduledSession.scheduled_date, ScheduledSession.id))
    return list(result.scalars().all())


async def _notify(
    db: AsyncSession,
    redis: object,
    user_id: int,
    title: str,
    message: str,
    session: ScheduledSession,
) -> None:
    metadata: dict[str, Any] = {
        "session_id": session.id,
        "mentor_id": session.mentor_id,
        "mentee_id": session.mentee_id,
        "status": session.status,
        "scheduled_date": session.scheduled_date.isoformat(),
    }
    await create_notification(db, user_id, "session", title=title, message=message, metadata=metadata, redis=redis)
