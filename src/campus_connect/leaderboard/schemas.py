"""Pydantic response models for leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class LeaderboardEntryResponse(BaseModel):
    user_id: int
    name: str | None = None
    score: float
    rank: int
    metadata: dict = Field(default_factory=dict)


class LeaderboardResponse(BaseModel):
    type: str
    period: str
    last_updated: datetime | None = None
    rankings: list[LeaderboardEntryResponse]


class UserRankResponse(BaseModel):
    user_id: int
    type: str
    period: str
    rank: int | None = None
    score: float | None = None


class MyRankingsResponse(BaseModel):
    user_id: int
    rankings: dict[str, UserRankResponse]


class TopPerformersResponse(BaseModel):
    projects: list[LeaderboardEntryResponse]
    contributions: list[LeaderboardEntryResponse]
    mentorship: list[LeaderboardEntryResponse]


class RebuildRequest(BaseModel):
    type: str | None = None
    period: str | None = None


class RebuildResponse(BaseModel):
    rebuilt: dict[str, int]
