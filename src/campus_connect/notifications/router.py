"""Notification endpoints for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.auth.dependencies import get_current_user
from campus_connect.database import get_session
from campus_connect.db.models import User
from campus_connect.errors import NotFoundError
from campus_connect.notifications.notification_push import notification_payload
from campus_connect.notifications.notification_service import (
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
)
from campus_connect.notifications.schemas import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Newest first."""
    notifications, total = await get_notifications(db, user.id, page, per_page, unread_only)
    return NotificationListResponse(
        notifications=[NotificationResponse(**notification_payload(n)) for n in notifications],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return UnreadCountResponse(unread_count=await get_unread_count(db, user.id))


@router.post("/read-all", response_model=MarkReadResponse)
async def read_all(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    marked = await mark_all_as_read(db, user.id)
    await db.commit()
    return MarkReadResponse(marked=marked, unread_count=0)


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def read_one(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """404 for another user's notification as well as a missing one."""
    if not await mark_as_read(db, user.id, notification_id):
        raise NotFoundError("Notification not found")
    await db.commit()
    return MarkReadResponse(marked=1, unread_count=await get_unread_count(db, user.id))
