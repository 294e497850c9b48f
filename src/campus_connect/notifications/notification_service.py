"""Notification sink.

Achievement, leaderboard and session events are recorded here for the
recipient. A notification is flushed in the caller's transaction and then
pushed over Redis; the caller commits. Reads are always scoped to the
recipient.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from campus_connect.db.models import Notification
from campus_connect.notifications.notification_push import push_notification_to_user

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    ACHIEVEMENT = "achievement"
    LEADERBOARD = "leaderboard"
    SESSION = "session"
    GENERAL = "general"


VALID_TYPES = frozenset(t.value for t in NotificationType)


def _recipient_filters(user_id: int, unread_only: bool = False) -> list[ColumnElement[bool]]:
    filters: list[ColumnElement[bool]] = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.read.is_(False))
    return filters


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,  # noqa: ANN401
) -> Notification:
    """Record a notification for ``user_id`` and push it to their channel.

    Raises:
        ValueError: ``type_`` is not one of the notification types.
    """
    try:
        kind = NotificationType(type_)
    except ValueError:
        raise ValueError(f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}") from None

    notification = Notification(
        user_id=user_id,
        type=kind.value,
        title=title,
        message=message,
        notification_metadata=metadata or {},
        read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()
    logger.debug("Notification %s (%s) recorded for user %s", notification.id, kind.value, user_id)

    await push_notification_to_user(redis, notification)
    return notification


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    """One page of the user's notifications, newest first, and the total matching count."""
    filters = _recipient_filters(user_id, unread_only)
    total = (await db.execute(select(func.count(Notification.id)).where(*filters))).scalar_one()
    page_rows = await db.execute(
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(page_rows.scalars().all()), total


async def _mark_read(db: AsyncSession, *filters: ColumnElement[bool]) -> int:
    result = await db.execute(update(Notification).where(*filters).values(read=True))
    await db.flush()
    return result.rowcount


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """Mark one of the user's notifications read. False when it is not theirs or does not exist."""
    return await _mark_read(db, Notification.id == notification_id, *_recipient_filters(user_id)) > 0


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    return await _mark_read(db, *_recipient_filters(user_id, unread_only=True))


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(*_recipient_filters(user_id, unread_only=True))
    )
    return result.scalar_one()
