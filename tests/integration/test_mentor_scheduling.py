"""Integration: mentor availability, booking conflicts, rescheduling and session lifecycle."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from campus_connect.db.models import Notification, ScheduledSession
from campus_connect.errors import ForbiddenError, NotFoundError, ValidationError
from campus_connect.gamification.stats_service import get_stats
from campus_connect.scheduling import session_service
from campus_connect.scheduling.availability_service import (
    get_availability,
    get_available_slots,
    get_next_available_slot,
    set_availability,
)
from campus_connect.scheduling.schemas import AvailabilityUpdate
from campus_connect.scheduling.session_service import (
    BookingError,
    list_sessions,
    reschedule_session,
    schedule_session,
    submit_feedback,
    update_session_status,
)

MONDAY = date(2030, 1, 7)


def _at(day: date, hhmm: str, tz=timezone.utc) -> datetime:
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)


def _availability(**overrides) -> AvailabilityUpdate:
    data = {
        "weekly_schedule": [
            {
                "day": "monday",
                "time_slots": [
                    {"start_time": "09:00", "end_time": "10:00"},
                    {"start_time": "10:00", "end_time": "11:00"},
                    {"start_time": "14:00", "end_time": "15:00"},
                ],
            },
        ],
        "exceptions": [],
        "timezone": "UTC",
        "max_sessions_per_day": 3,
        "session_duration": 60,
    }
    data.update(overrides)
    return AvailabilityUpdate.model_validate(data)


@pytest_asyncio.fixture
async def pair(db_session, make_user):
    """A mentor with Monday availability and a mentee."""
    mentor = await make_user(name="Mira Mentor", role="mentor")
    mentee = await make_user(name="Sam Student")
    await set_availability(db_session, mentor.id, _availability())
    return mentor, mentee


async def _active_sessions(db, mentor_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(ScheduledSession).where(
            ScheduledSession.mentor_id == mentor_id,
            ScheduledSession.status.in_(("scheduled", "confirmed")),
        )
    )
    return result.scalar_one()


def _starts(slots) -> list[str]:
    return [slot.start_time for slot in slots]


class TestAvailability:
    """Stored availability and open slots."""

    @pytest.mark.asyncio
    async def test_set_and_replace(self, db_session, make_user):
        db = db_session
        mentor = await make_user(role="mentor")

        await set_availability(db, mentor.id, _availability())
        updated = await set_availability(db, mentor.id, _availability(timezone="Europe/Berlin", max_sessions_per_day=1))

        assert updated.timezone == "Europe/Berlin"
        assert updated.max_sessions_per_day == 1
        stored = await get_availability(db, mentor.id)
        assert stored.id == updated.id

    @pytest.mark.asyncio
    async def test_unknown_mentor(self, db_session):
        with pytest.raises(NotFoundError):
            await set_availability(db_session, 99999, _availability())

    @pytest.mark.asyncio
    async def test_slots_without_availability_raise(self, db_session, make_user):
        mentor = await make_user()
        with pytest.raises(NotFoundError):
            await get_available_slots(db_session, mentor.id, MONDAY)

    @pytest.mark.asyncio
    async def test_template_slots(self, db_session, pair):
        mentor, _ = pair
        assert _starts(await get_available_slots(db_session, mentor.id, MONDAY)) == ["09:00", "10:00", "14:00"]
        assert await get_available_slots(db_session, mentor.id, MONDAY + timedelta(days=1)) == []

    @pytest.mark.asyncio
    async def test_unavailable_exception_returns_no_slots(self, db_session, make_user):
        """Monday 09:00-10:00 in the template, this Monday marked unavailable: []."""
        db = db_session
        mentor = await make_user(role="mentor")
        await set_availability(db, mentor.id, _availability(
            weekly_schedule=[{"day": "monday", "time_slots": [{"start_time": "09:00", "end_time": "10:00"}]}],
            exceptions=[{"date": MONDAY.isoformat(), "is_available": False, "reason": "Conference"}],
        ))

        assert await get_available_slots(db, mentor.id, MONDAY) == []
        assert _starts(await get_available_slots(db, mentor.id, MONDAY + timedelta(days=7))) == ["09:00"]

    @pytest.mark.asyncio
    async def test_booked_slot_removed(self, db_session, pair):
        mentor, mentee = pair
        await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "10:00"))

        assert _starts(await get_available_slots(db_session, mentor.id, MONDAY)) == ["09:00", "14:00"]


class TestBooking:
    """schedule_session outcomes."""

    @pytest.mark.asyncio
    async def test_books_open_slot(self, db_session, pair):
        db = db_session
        mentor, mentee = pair

        result = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"), agenda="Career chat")

        assert result.ok
        assert result.error is None
        session = result.session
        assert session.slot_date == MONDAY
        assert session.slot_start == "09:00"
        assert session.status == "scheduled"
        assert session.duration == 60
        assert session.scheduled_date == _at(MONDAY, "09:00")

        notified = await db.execute(
            select(Notification.user_id).where(Notification.type == "session").order_by(Notification.user_id)
        )
        assert notified.scalars().all() == sorted([mentor.id, mentee.id])

    @pytest.mark.asyncio
    async def test_same_slot_twice_conflicts(self, db_session, make_user, pair):
        db = db_session
        mentor, mentee = pair
        other = await make_user()

        first = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))
        second = await schedule_session(db, None, mentor.id, other.id, _at(MONDAY, "09:00"))

        assert first.ok
        assert not second.ok
        assert second.error is BookingError.SLOT_ALREADY_BOOKED
        assert second.message == "That slot is already booked"
        assert [(s.date, s.start_time) for s in second.alternatives] == [(MONDAY, "10:00"), (MONDAY, "14:00")]
        assert await _active_sessions(db, mentor.id) == 1

    @pytest.mark.asyncio
    async def test_stale_read_loses_at_insert(self, db_session, make_user, pair, monkeypatch):
        """Two bookings racing past the read check: the unique index rejects the second."""
        db = db_session
        mentor, mentee = pair
        other = await make_user()
        # The losing insert rolls back, which expires loaded ORM instances
        mentor_id, mentee_id, other_id = mentor.id, mentee.id, other.id

        first = await schedule_session(db, None, mentor_id, mentee_id, _at(MONDAY, "09:00"))

        async def _nothing_booked(*args, **kwargs):
            return set()

        monkeypatch.setattr(session_service, "get_booked_starts", _nothing_booked)
        second = await schedule_session(db, None, mentor_id, other_id, _at(MONDAY, "09:00"))

        assert first.ok
        assert second.error is BookingError.SLOT_ALREADY_BOOKED
        assert await _active_sessions(db, mentor_id) == 1

    @pytest.mark.asyncio
    async def test_outside_template_unavailable(self, db_session, pair):
        mentor, mentee = pair

        off_grid = await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "09:30"))
        tuesday = await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY + timedelta(days=1), "09:00"))

        assert off_grid.error is BookingError.SLOT_UNAVAILABLE
        assert tuesday.error is BookingError.SLOT_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_daily_limit(self, db_session, make_user):
        db = db_session
        mentor = await make_user(role="mentor")
        mentee = await make_user()
        await set_availability(db, mentor.id, _availability(max_sessions_per_day=2))

        assert (await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))).ok
        assert (await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "10:00"))).ok
        third = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "14:00"))

        assert third.error is BookingError.DAILY_LIMIT_REACHED
        assert await get_available_slots(db, mentor.id, MONDAY) == []

    @pytest.mark.asyncio
    async def test_mentor_without_availability(self, db_session, make_user):
        mentor = await make_user()
        mentee = await make_user()
        result = await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))
        assert result.error is BookingError.AVAILABILITY_NOT_SET

    @pytest.mark.asyncio
    async def test_cannot_book_self(self, db_session, pair):
        mentor, _ = pair
        with pytest.raises(ValidationError):
            await schedule_session(db_session, None, mentor.id, mentor.id, _at(MONDAY, "09:00"))

    @pytest.mark.asyncio
    async def test_mentor_timezone(self, db_session, make_user):
        """Slots are in the mentor's timezone; 14:00 UTC is 09:00 in New York in January."""
        db = db_session
        mentor = await make_user(role="mentor")
        mentee = await make_user()
        await set_availability(db, mentor.id, _availability(timezone="America/New_York"))

        result = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "14:00"))

        assert result.ok
        assert result.session.slot_start == "09:00"
        assert result.session.scheduled_date == _at(MONDAY, "14:00")

    @pytest.mark.asyncio
    async def test_naive_time_is_mentor_local(self, db_session, make_user):
        db = db_session
        mentor = await make_user(role="mentor")
        mentee = await make_user()
        await set_availability(db, mentor.id, _availability(timezone="America/New_York"))

        result = await schedule_session(db, None, mentor.id, mentee.id, datetime(2030, 1, 7, 10, 0))

        assert result.session.slot_start == "10:00"
        assert result.session.scheduled_date == _at(MONDAY, "15:00")

    @pytest.mark.asyncio
    async def test_cancelled_session_frees_slot(self, db_session, make_user, pair):
        db = db_session
        mentor, mentee = pair
        other = await make_user()

        booked = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))
        await update_session_status(db, None, booked.session.id, mentee.id, "cancelled")
        rebooked = await schedule_session(db, None, mentor.id, other.id, _at(MONDAY, "09:00"))

        assert rebooked.ok
        assert await _active_sessions(db, mentor.id) == 1


class TestNextSlot:
    """Earliest open slot lookup."""

    @pytest.mark.asyncio
    async def test_next_slot_today(self, db_session, pair):
        mentor, _ = pair
        slot = await get_next_available_slot(db_session, mentor.id, now=_at(MONDAY, "08:00"))
        assert (slot.date, slot.start_time) == (MONDAY, "09:00")

    @pytest.mark.asyncio
    async def test_skips_booked_and_past(self, db_session, pair):
        mentor, mentee = pair
        await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "10:00"))

        slot = await get_next_available_slot(db_session, mentor.id, now=_at(MONDAY, "09:30"))
        assert (slot.date, slot.start_time) == (MONDAY, "14:00")

    @pytest.mark.asyncio
    async def test_rolls_to_next_week(self, db_session, pair):
        mentor, _ = pair
        slot = await get_next_available_slot(db_session, mentor.id, now=_at(MONDAY, "15:00"))
        assert (slot.date, slot.start_time) == (MONDAY + timedelta(days=7), "09:00")


class TestReschedule:
    """Moving sessions between slots."""

    @pytest.mark.asyncio
    async def test_reschedule_moves_slot_and_records_history(self, db_session, pair):
        db = db_session
        mentor, mentee = pair
        booked = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))
        await update_session_status(db, None, booked.session.id, mentor.id, "confirmed")

        moved = await reschedule_session(db, None, booked.session.id, mentee.id, _at(MONDAY, "14:00"), "Exam clash")

        assert moved.ok
        session = moved.session
        assert session.slot_start == "14:00"
        assert session.status == "scheduled"
        assert len(session.reschedule_history) == 1
        entry = session.reschedule_history[0]
        assert entry["reason"] == "Exam clash"
        assert entry["rescheduled_by"] == mentee.id
        assert _starts(await get_available_slots(db, mentor.id, MONDAY)) == ["09:00", "10:00"]

    @pytest.mark.asyncio
    async def test_reschedule_into_booked_slot_conflicts(self, db_session, make_user, pair):
        db = db_session
        mentor, mentee = pair
        other = await make_user()
        mine = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))
        await schedule_session(db, None, mentor.id, other.id, _at(MONDAY, "10:00"))

        moved = await reschedule_session(db, None, mine.session.id, mentee.id, _at(MONDAY, "10:00"), "Later please")

        assert moved.error is BookingError.SLOT_ALREADY_BOOKED
        session = await session_service.get_session_by_id(db, mine.session.id)
        assert session.slot_start == "09:00"
        assert session.reschedule_history == []

    @pytest.mark.asyncio
    async def test_outsider_cannot_reschedule(self, db_session, make_user, pair):
        mentor, mentee = pair
        outsider = await make_user()
        booked = await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))

        with pytest.raises(ForbiddenError):
            await reschedule_session(db_session, None, booked.session.id, outsider.id, _at(MONDAY, "14:00"), "Nope")

    @pytest.mark.asyncio
    async def test_cannot_reschedule_cancelled(self, db_session, pair):
        mentor, mentee = pair
        booked = await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))
        await update_session_status(db_session, None, booked.session.id, mentor.id, "cancelled")

        with pytest.raises(ValidationError):
            await reschedule_session(db_session, None, booked.session.id, mentee.id, _at(MONDAY, "14:00"), "Too late")


class TestSessionLifecycle:
    """Status transitions, completion side effects and feedback."""

    @pytest.mark.asyncio
    async def test_only_mentor_confirms(self, db_session, pair):
        mentor, mentee = pair
        booked = await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))

        with pytest.raises(ForbiddenError):
            await update_session_status(db_session, None, booked.session.id, mentee.id, "confirmed")

        session = await update_session_status(db_session, None, booked.session.id, mentor.id, "confirmed")
        assert session.status == "confirmed"

    @pytest.mark.asyncio
    async def test_terminal_status_cannot_change(self, db_session, pair):
        mentor, mentee = pair
        booked = await schedule_session(db_session, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))
        await update_session_status(db_session, None, booked.session.id, mentee.id, "cancelled")

        with pytest.raises(ValidationError):
            await update_session_status(db_session, None, booked.session.id, mentor.id, "confirmed")

    @pytest.mark.asyncio
    async def test_completion_tracks_mentorship_session(self, db_session, pair):
        db = db_session
        mentor, mentee = pair
        booked = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))

        session = await update_session_status(db, None, booked.session.id, mentor.id, "completed", notes="Great chat")

        assert session.status == "completed"
        assert session.notes == "Great chat"
        stats = await get_stats(db, mentor.id)
        assert stats.mentorship_sessions == 1
        assert stats.total_points == 50
        assert await get_stats(db, mentee.id) is None

    @pytest.mark.asyncio
    async def test_feedback_per_role(self, db_session, pair):
        db = db_session
        mentor, mentee = pair
        booked = await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))

        with pytest.raises(ValidationError):
            await submit_feedback(db, booked.session.id, mentee.id, "Too early", 5)

        await update_session_status(db, None, booked.session.id, mentor.id, "completed")
        await submit_feedback(db, booked.session.id, mentee.id, "Very helpful", 5)
        session = await submit_feedback(db, booked.session.id, mentor.id, "Well prepared", 4)

        assert session.feedback["mentee"]["rating"] == 5
        assert session.feedback["mentor"]["comment"] == "Well prepared"

    @pytest.mark.asyncio
    async def test_list_sessions_by_role(self, db_session, make_user, pair):
        db = db_session
        mentor, mentee = pair
        await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "14:00"))
        await schedule_session(db, None, mentor.id, mentee.id, _at(MONDAY, "09:00"))

        as_mentee = await list_sessions(db, mentee.id, role="mentee")
        as_mentor = await list_sessions(db, mentee.id, role="mentor")

        assert [s.slot_start for s in as_mentee] == ["09:00", "14:00"]
        assert as_mentor == []
        assert len(await list_sessions(db, mentor.id)) == 2
        assert len(await list_sessions(db, mentor.id, status="cancelled")) == 0
