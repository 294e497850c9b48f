"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from campus_connect.gamification.activity_tracker import ActivityKind


# --- Activities ---


class ActivityRequest(BaseModel):
    user_id: int
    kind: ActivityKind
    metadata: dict = Field(default_factory=dict)


class AwardedBadge(BaseModel):
    slug: str
    name: str
    icon: str
    category: str
    rarity: str
    points: int


class ActivityResponse(BaseModel):
    user_id: int
    kind: ActivityKind
    level: int
    total_points: int
    current_streak: int
    longest_streak: int
    new_badges: list[AwardedBadge]
    badge_evaluation_failed: bool = False


class EvaluateResponse(BaseModel):
    user_id: int
    new_badges: list[AwardedBadge]


# --- Badges ---


class BadgeResponse(BaseModel):
    slug: str
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    criteria_type: str
    criteria_target: float
    criteria_metric: str
    points: int


class AllBadgesResponse(BaseModel):
    badges: list[BadgeResponse]


class BadgeProgressResponse(BaseModel):
    slug: str
    name: str
    metric: str
    current: float
    target: float
    percentage: float
    earned: bool
    earned_at: datetime | None = None


# --- Progress ---


class EarnedBadgeResponse(BaseModel):
    slug: str
    name: str
    icon: str
    category: str
    rarity: str
    points: int
    earned_at: datetime


class StreakResponse(BaseModel):
    current: int
    longest: int
    last_activity: datetime | None = None


class UserProgressResponse(BaseModel):
    user_id: int
    level: int
    total_points: int
    points_into_level: int
    next_level_at: int
    points_to_next_level: int
    badges: list[EarnedBadgeResponse]
    streaks: StreakResponse
    stats: dict[str, int]


class RecentAchievement(BaseModel):
    slug: str
    name: str
    earned_at: datetime


class AchievementAnalyticsResponse(BaseModel):
    user_id: int
    total_badges: int
    available_badges: int
    completion_rate: float
    badge_points: int
    by_category: dict[str, int]
    by_rarity: dict[str, int]
    recent: list[RecentAchievement]
