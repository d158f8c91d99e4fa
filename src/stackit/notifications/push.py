"""Publish notification events over Redis pub/sub for real-time delivery."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stackit.db.models import Notification

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "notifications:user:"


def user_channel(user_id: int) -> str:
    return f"{CHANNEL_PREFIX}{user_id}"


def serialize_notification(notification: "Notification") -> dict[str, Any]:
    """JSON-safe dict of a notification, shared by pub/sub payloads and API responses."""
    return {
        "id": notification.id,
        "type": notification.type,
        "message": notification.message,
        "is_read": notification.is_read,
        "question_id": notification.question_id,
        "answer_id": notification.answer_id,
        "comment_id": notification.comment_id,
        "actor_user_id": notification.actor_user_id,
        "created_at": (
            notification.created_at.isoformat()
            if notification.created_at
            else None
        ),
    }


async def publish(redis: object | None, user_id: int, payload: dict[str, Any]) -> None:
    """Fire-and-forget publish to ``notifications:user:{user_id}``.

    No subscribers is not an error, and a Redis failure is only logged.
    """
    if redis is None:
        return

    message = {"timestamp": datetime.now(timezone.utc).isoformat(), **payload}
    try:
        await redis.publish(  # type: ignore[union-attr]
            user_channel(user_id),
            json.dumps(message),
        )
    except Exception:
        logger.warning(
            "Failed to publish notification event via %s",
            user_channel(user_id),
            exc_info=True,
        )


async def push_new_notification(redis: object | None, notification: "Notification") -> None:
    """Publish a ``new_notification`` event. The notification must already have an ``id``."""
    await publish(
        redis,
        notification.user_id,
        {"type": "new_notification", "notification": serialize_notification(notification)},
    )


async def push_read_state(
    redis: object | None,
    user_id: int,
    count: int,
    notification_ids: list[int] | None,
) -> None:
    """Publish a ``notifications_read`` event after read-state changes."""
    await publish(
        redis,
        user_id,
        {"type": "notifications_read", "count": count, "notification_ids": notification_ids},
    )
