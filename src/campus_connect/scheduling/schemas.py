"""Pydantic models for mentor availability and session scheduling."""

from __future__ import annotations

import datetime as dt
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from campus_connect.config import get_settings

DayName = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
SessionStatus = Literal["scheduled", "confirmed", "completed", "cancelled", "rescheduled"]
MeetingType = Literal["online", "offline"]

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


# --- Availability ---


class TimeSlot(BaseModel):
    start_time: str = Field(pattern=_HHMM)
    end_time: str = Field(pattern=_HHMM)
    is_available: bool = True

    @model_validator(mode="after")
    def _end_after_start(self) -> TimeSlot:
        # Zero-padded HH:MM strings order lexically
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class DaySchedule(BaseModel):
    day: DayName
    time_slots: list[TimeSlot] = Field(default_factory=list)


class AvailabilityException(BaseModel):
    date: dt.date
    is_available: bool
    time_slots: list[TimeSlot] | None = None
    reason: str | None = None


class AvailabilityUpdate(BaseModel):
    weekly_schedule: list[DaySchedule] = Field(default_factory=list)
    exceptions: list[AvailabilityException] = Field(default_factory=list)
    timezone: str = "UTC"
    max_sessions_per_day: int = Field(default_factory=lambda: get_settings().default_max_sessions_per_day, ge=1, le=24)
    session_duration: int = Field(default_factory=lambda: get_settings().default_session_duration, ge=15, le=480)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("weekly_schedule")
    @classmethod
    def _one_entry_per_day(cls, value: list[DaySchedule]) -> list[DaySchedule]:
        days = [entry.day for entry in value]
        if len(days) != len(set(days)):
            raise ValueError("weekly_schedule lists a day more than once")
        return value


class AvailabilityResponse(AvailabilityUpdate):
    mentor_id: int


class AvailableSlotsResponse(BaseModel):
    mentor_id: int
    date: dt.date
    timezone: str
    slots: list[TimeSlot]


class SuggestedSlot(BaseModel):
    date: dt.date
    start_time: str
    end_time: str


class NextSlotResponse(BaseModel):
    mentor_id: int
    slot: SuggestedSlot | None = None
    duration: int | None = None


# --- Sessions ---


class SessionCreate(BaseModel):
    mentor_id: int
    scheduled_date: dt.datetime
    duration: int | None = Field(None, ge=15, le=480)
    meeting_type: MeetingType = "online"
    meeting_link: str | None = None
    location: str | None = None
    agenda: str | None = None


class StatusUpdate(BaseModel):
    status: Literal["confirmed", "completed", "cancelled"]
    notes: str | None = None


class RescheduleRequest(BaseModel):
    new_date: dt.datetime
    reason: str = Field(min_length=1, max_length=500)


class FeedbackRequest(BaseModel):
    comment: str = Field("", max_length=2000)
    rating: int = Field(ge=1, le=5)


class SessionResponse(BaseModel):
    id: int
    mentor_id: int
    mentee_id: int
    scheduled_date: dt.datetime
    slot_date: dt.date
    slot_start: str
    duration: int
    meeting_type: str
    meeting_link: str | None = None
    location: str | None = None
    agenda: str | None = None
    status: str
    notes: str | None = None
    feedback: dict = Field(default_factory=dict)
    reschedule_history: list[dict] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int
