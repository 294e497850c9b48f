"""Mentor availability: weekly templates, date exceptions, open slots.

Slot times are ``HH:MM`` strings in the mentor's own timezone. A date
exception replaces that date's template entirely: an unavailable
exception empties the day, and an exception with its own slots makes
exactly those slots the day's list.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import get_settings
from campus_connect.db.models import ACTIVE_SESSION_STATUSES, MentorAvailability, ScheduledSession, User
from campus_connect.db.upsert import dialect_insert
from campus_connect.errors import NotFoundError
from campus_connect.scheduling.schemas import AvailabilityUpdate, SuggestedSlot, TimeSlot

logger = logging.getLogger(__name__)

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def weekday_name(day: date) -> str:
    return _WEEKDAYS[day.weekday()]


def resolve_day_slots(
    weekly_schedule: Sequence[dict[str, Any]],
    exceptions: Sequence[dict[str, Any]],
    day: date,
) -> list[TimeSlot]:
    """Bookable slots for ``day`` before booked sessions are removed. Pure function."""
    for exception in exceptions:
        if exception.get("date") != day.isoformat():
            continue
        if not exception.get("is_available", False):
            return []
        if exception.get("time_slots"):
            return [
                TimeSlot(start_time=slot["start_time"], end_time=slot["end_time"])
                for slot in exception["time_slots"]
                if slot.get("is_available", True)
            ]
        # Available exception without its own slots keeps the weekly template
        break

    day_name = weekday_name(day)
    for entry in weekly_schedule:
        if entry.get("day") == day_name:
            return sorted(
                (TimeSlot(**slot) for slot in entry.get("time_slots", []) if slot.get("is_available", True)),
                key=lambda slot: slot.start_time,
            )
    return []


def mentor_zone(availability: MentorAvailability) -> ZoneInfo:
    return ZoneInfo(availability.timezone or "UTC")


def to_mentor_local(availability: MentorAvailability, moment: datetime) -> datetime:
    """Express ``moment`` in the mentor's timezone. Naive datetimes are taken as mentor-local."""
    zone = mentor_zone(availability)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=zone)
    return moment.astimezone(zone)


def slot_datetime_utc(availability: MentorAvailability, day: date, start_time: str) -> datetime:
    hour, minute = (int(part) for part in start_time.split(":"))
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=mentor_zone(availability))
    return local.astimezone(timezone.utc)


async def get_availability(db: AsyncSession, mentor_id: int) -> MentorAvailability | None:
    result = await db.execute(
        select(MentorAvailability)
        .where(MentorAvailability.mentor_id == mentor_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def set_availability(db: AsyncSession, mentor_id: int, update: AvailabilityUpdate) -> MentorAvailability:
    """Create or replace a mentor's availability and commit."""
    if await db.get(User, mentor_id) is None:
        raise NotFoundError(f"User {mentor_id} not found")

    values = update.model_dump(mode="json")
    now = datetime.now(timezone.utc)
    table = MentorAvailability.__table__
    stmt = dialect_insert(db, table).values(mentor_id=mentor_id, created_at=now, updated_at=now, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["mentor_id"],
        set_={**{name: stmt.excluded[name] for name in values}, "updated_at": now},
    )
    await db.execute(stmt)
    await db.commit()

    availability = await get_availability(db, mentor_id)
    if availability is None:
        msg = f"availability for mentor {mentor_id} vanished after upsert"
        raise RuntimeError(msg)
    logger.info("Availability updated for mentor %s", mentor_id)
    return availability


async def get_booked_starts(
    db: AsyncSession,
    mentor_id: int,
    day: date,
    exclude_session_id: int | None = None,
) -> set[str]:
    """Start times of the mentor's active sessions on ``day`` (mentor-local)."""
    stmt = select(ScheduledSession.slot_start).where(
        ScheduledSession.mentor_id == mentor_id,
        ScheduledSession.slot_date == day,
        ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
    )
    if exclude_session_id is not None:
        stmt = stmt.where(ScheduledSession.id != exclude_session_id)
    result = await db.execute(stmt)
    return set(result.scalars().all())


async def count_active_sessions(db: AsyncSession, mentor_id: int, day: date) -> int:
    result = await db.execute(
        select(func.count(ScheduledSession.id)).where(
            ScheduledSession.mentor_id == mentor_id,
            ScheduledSession.slot_date == day,
            ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
    )
    return result.scalar_one()


async def available_slots_for(
    db: AsyncSession,
    availability: MentorAvailability,
    day: date,
) -> list[TimeSlot]:
    booked = await get_booked_starts(db, availability.mentor_id, day)
    if len(booked) >= availability.max_sessions_per_day:
        return []
    slots = resolve_day_slots(availability.weekly_schedule, availability.exceptions, day)
    # Exact start-time match only; a longer session does not block the slots it overlaps
    return [slot for slot in slots if slot.start_time not in booked]


async def get_available_slots(db: AsyncSession, mentor_id: int, day: date) -> list[TimeSlot]:
    """Open slots for a mentor on a date (mentor-local)."""
    availability = await get_availability(db, mentor_id)
    if availability is None:
        raise NotFoundError(f"Mentor {mentor_id} has not configured availability")
    return await available_slots_for(db, availability, day)


async def suggest_alternative_slots(
    db: AsyncSession,
    availability: MentorAvailability,
    from_day: date,
    exclude: tuple[date, str] | None = None,
    not_before: datetime | None = None,
) -> list[SuggestedSlot]:
    """Up to ``max_alternative_slots`` open slots over the next ``alternative_slot_lookahead_days``."""
    settings = get_settings()
    suggestions: list[SuggestedSlot] = []
    for offset in range(settings.alternative_slot_lookahead_days):
        day = from_day + timedelta(days=offset)
        for slot in await available_slots_for(db, availability, day):
            if exclude is not None and (day, slot.start_time) == exclude:
                continue
            if not_before is not None and slot_datetime_utc(availability, day, slot.start_time) <= not_before:
                continue
            suggestions.append(SuggestedSlot(date=day, start_time=slot.start_time, end_time=slot.end_time))
            if len(suggestions) >= settings.max_alternative_slots:
                return suggestions
    return suggestions


async def get_next_available_slot(
    db: AsyncSession,
    mentor_id: int,
    now: datetime | None = None,
) -> SuggestedSlot | None:
    """The earliest open slot that starts after ``now``, looking a week ahead."""
    availability = await get_availability(db, mentor_id)
    if availability is None:
        raise NotFoundError(f"Mentor {mentor_id} has not configured availability")
    if now is None:
        now = datetime.now(timezone.utc)

    today = to_mentor_local(availability, now).date()
    for offset in range(get_settings().alternative_slot_lookahead_days + 1):
        day = today + timedelta(days=offset)
        for slot in await available_slots_for(db, availability, day):
            if slot_datetime_utc(availability, day, slot.start_time) > now:
                return SuggestedSlot(date=day, start_time=slot.start_time, end_time=slot.end_time)
    return None
