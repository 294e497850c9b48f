"""Best-effort Redis pub/sub fan-out.

Per-user notifications go to ``ws:user:{user_id}``, where the campus
socket relay picks them up; broadcast events (leaderboard updates) go to
``pubsub:*`` channels. A missing or failing Redis never fails the caller.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from campus_connect.db.models import Notification

logger = logging.getLogger(__name__)


def user_channel(user_id: int) -> str:
    return f"ws:user:{user_id}"


def notification_payload(notification: "Notification") -> dict[str, Any]:
    """Client-facing shape of a notification, shared by pushes and the list endpoint."""
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "metadata": notification.notification_metadata or {},
        "timestamp": notification.created_at,
        "read": bool(notification.read),
    }


def _json_default(value: object) -> str:
    return value.isoformat() if isinstance(value, datetime) else str(value)


async def _publish(redis: Any | None, channel: str, payload: dict[str, Any]) -> bool:  # noqa: ANN401
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=_json_default))
    except Exception:
        logger.warning("Publish to %s failed", channel, exc_info=True)
        return False
    return True


async def push_notification_to_user(redis: Any | None, notification: "Notification") -> bool:  # noqa: ANN401
    """Publish a flushed notification to its recipient's channel. Returns True when sent."""
    return await _publish(
        redis,
        user_channel(notification.user_id),
        {"event": "notification", "data": notification_payload(notification)},
    )


async def publish_event(redis: Any | None, channel: str, payload: dict[str, Any]) -> bool:  # noqa: ANN401
    """Broadcast a domain event such as ``pubsub:leaderboard_updated``."""
    return await _publish(redis, channel, payload)
