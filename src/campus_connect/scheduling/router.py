"""Mentor availability and session scheduling endpoints."""

from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.auth.dependencies import get_current_user
from campus_connect.database import get_session
from campus_connect.db.models import MentorAvailability, User
from campus_connect.dependencies import get_redis_dep
from campus_connect.errors import NotFoundError
from campus_connect.scheduling.availability_service import (
    get_availability,
    get_available_slots,
    get_next_available_slot,
    set_availability,
)
from campus_connect.scheduling.schemas import (
    AvailabilityResponse,
    AvailabilityUpdate,
    AvailableSlotsResponse,
    FeedbackRequest,
    NextSlotResponse,
    RescheduleRequest,
    SessionCreate,
    SessionListResponse,
    SessionResponse,
    StatusUpdate,
)
from campus_connect.scheduling.session_service import (
    BookingResult,
    list_sessions,
    reschedule_session,
    schedule_session,
    submit_feedback,
    update_session_status,
)

router = APIRouter(prefix="/api/v1", tags=["Scheduling"])


def _availability_response(availability: MentorAvailability) -> AvailabilityResponse:
    return AvailabilityResponse(
        mentor_id=availability.mentor_id,
        weekly_schedule=availability.weekly_schedule,
        exceptions=availability.exceptions,
        timezone=availability.timezone,
        max_sessions_per_day=availability.max_sessions_per_day,
        session_duration=availability.session_duration,
    )


def _booking_response(result: BookingResult) -> SessionResponse:
    if not result.ok:
        raise HTTPException(
            status_code=409,
            detail={
                "error": result.error.value,
                "message": result.message,
                "alternatives": [slot.model_dump(mode="json") for slot in result.alternatives],
            },
        )
    return SessionResponse.model_validate(result.session)


# ── Availability ──


@router.get("/mentors/me/availability", response_model=AvailabilityResponse)
async def my_availability(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The current mentor's weekly template and exceptions."""
    availability = await get_availability(db, user.id)
    if availability is None:
        raise HTTPException(status_code=404, detail="Availability not configured")
    return _availability_response(availability)


@router.put("/mentors/me/availability", response_model=AvailabilityResponse)
async def update_my_availability(
    body: AvailabilityUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Replace the current mentor's availability."""
    availability = await set_availability(db, user.id, body)
    return _availability_response(availability)


@router.get("/mentors/{mentor_id}/slots/{date}", response_model=AvailableSlotsResponse)
async def mentor_slots(
    mentor_id: int,
    date: dt.date,
    db: AsyncSession = Depends(get_session),
):
    """Open slots for a mentor on a date, in the mentor's timezone."""
    availability = await get_availability(db, mentor_id)
    if availability is None:
        raise NotFoundError(f"Mentor {mentor_id} has not configured availability")
    slots = await get_available_slots(db, mentor_id, date)
    return AvailableSlotsResponse(
        mentor_id=mentor_id,
        date=date,
        timezone=availability.timezone,
        slots=slots,
    )


@router.get("/mentors/{mentor_id}/next-slot", response_model=NextSlotResponse)
async def mentor_next_slot(
    mentor_id: int,
    db: AsyncSession = Depends(get_session),
):
    """The mentor's earliest open slot within the coming week."""
    slot = await get_next_available_slot(db, mentor_id)
    availability = await get_availability(db, mentor_id)
    return NextSlotResponse(
        mentor_id=mentor_id,
        slot=slot,
        duration=availability.session_duration if availability is not None else None,
    )


# ── Sessions ──


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def book_session(
    body: SessionCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Book a session with a mentor as the current user. 409 with alternatives when the slot is taken."""
    result = await schedule_session(
        db,
        redis,
        mentor_id=body.mentor_id,
        mentee_id=user.id,
        scheduled_date=body.scheduled_date,
        duration=body.duration,
        meeting_type=body.meeting_type,
        meeting_link=body.meeting_link,
        location=body.location,
        agenda=body.agenda,
    )
    return _booking_response(result)


@router.get("/sessions/mine", response_model=SessionListResponse)
async def my_sessions(
    role: str | None = Query(None, pattern="^(mentor|mentee)$"),
    status: str | None = Query(None),
    upcoming: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Sessions the current user takes part in, soonest first."""
    sessions = await list_sessions(db, user.id, role=role, status=status, upcoming_only=upcoming)
    return SessionListResponse(
        sessions=[SessionResponse.model_validate(s) for s in sessions],
        total=len(sessions),
    )


@router.patch("/sessions/{session_id}/status", response_model=SessionResponse)
async def change_session_status(
    session_id: int,
    body: StatusUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Confirm, complete or cancel a session."""
    session = await update_session_status(db, redis, session_id, user.id, body.status, body.notes)
    return SessionResponse.model_validate(session)


@router.patch("/sessions/{session_id}/reschedule", response_model=SessionResponse)
async def move_session(
    session_id: int,
    body: RescheduleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Move a session to another open slot."""
    result = await reschedule_session(db, redis, session_id, user.id, body.new_date, body.reason)
    return _booking_response(result)


@router.post("/sessions/{session_id}/feedback", response_model=SessionResponse)
async def leave_feedback(
    session_id: int,
    body: FeedbackRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Rate a completed session."""
    session = await submit_feedback(db, session_id, user.id, body.comment, body.rating)
    return SessionResponse.model_validate(session)
