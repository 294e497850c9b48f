"""Pydantic response models for notification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    metadata: dict = Field(default_factory=dict)
    timestamp: datetime | None = None
    read: bool


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResponse(BaseModel):
    marked: int
    unread_count: int
