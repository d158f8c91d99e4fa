"""Notification queries, read-state transitions and retention cleanup.

Functions that change a user's unread set only flush. Callers commit and
then call ``after_read_state_change`` so the cache is invalidated after the
write is confirmed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.db.models import Notification
from stackit.notifications.cache import invalidate_unread_count
from stackit.notifications.push import push_read_state

logger = logging.getLogger(__name__)

VALID_TYPES = {"answer", "comment", "mention", "vote"}


async def list_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
    type_: str | None = None,
) -> tuple[list[Notification], int]:
    """Get a user's notifications (paginated, most recent first)."""
    if type_ is not None and type_ not in VALID_TYPES:
        msg = f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}"
        raise ValueError(msg)

    filters = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.is_read.is_(False))
    if type_ is not None:
        filters.append(Notification.type == type_)

    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(*filters)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def get_notification(db: AsyncSession, user_id: int, notification_id: int) -> Notification | None:
    """Fetch one notification owned by ``user_id``."""
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def mark_one_as_read(db: AsyncSession, user_id: int, notification_id: int) -> int | None:
    """Mark a single notification as read.

    Returns 1 if it changed, 0 if it was already read, None if it does not exist.
    """
    notification = await get_notification(db, user_id, notification_id)
    if notification is None:
        return None
    if notification.is_read:
        return 0
    notification.is_read = True
    await db.flush()
    return 1


async def mark_as_read(db: AsyncSession, user_id: int, notification_ids: list[int] | None = None) -> int:
    """Mark the given notifications (or all when ``None``) as read. Returns count changed."""
    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    if notification_ids is not None:
        if not notification_ids:
            return 0
        stmt = stmt.where(Notification.id.in_(notification_ids))
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    return await mark_as_read(db, user_id, None)


async def delete_notification(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """Delete one of the user's notifications. Returns True if it existed."""
    result = await db.execute(
        delete(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    await db.flush()
    return result.rowcount > 0


async def after_read_state_change(
    redis: object | None,
    user_id: int,
    count: int,
    notification_ids: list[int] | None = None,
) -> None:
    """Invalidate the unread cache and tell connected clients. Call after commit."""
    await invalidate_unread_count(redis, user_id)
    if count:
        await push_read_state(redis, user_id, count, notification_ids)


async def get_notification_stats(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Totals per read state and per type, plus the latest notification time."""
    per_type = {
        f"{type_}_count": func.coalesce(func.sum(case((Notification.type == type_, 1), else_=0)), 0)
        for type_ in sorted(VALID_TYPES)
    }
    result = await db.execute(
        select(
            func.count().label("total_notifications"),
            func.coalesce(
                func.sum(case((Notification.is_read.is_(False), 1), else_=0)), 0,
            ).label("unread_count"),
            *(expr.label(name) for name, expr in per_type.items()),
            func.max(Notification.created_at).label("latest_notification"),
        ).where(Notification.user_id == user_id)
    )
    row = result.one()
    return dict(row._mapping)


async def cleanup_old_notifications(
    db: AsyncSession,
    redis: object | None = None,
    days: int = 30,
    now: datetime | None = None,
) -> int:
    """Delete notifications older than ``days``, read or unread. Returns count deleted.

    Commits, then drops the cached unread counts of users who lost unread rows.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)

    affected = await db.execute(
        select(Notification.user_id)
        .where(Notification.created_at < cutoff, Notification.is_read.is_(False))
        .distinct()
    )
    affected_user_ids = [row[0] for row in affected]

    result = await db.execute(
        delete(Notification).where(Notification.created_at < cutoff),
        execution_options={"synchronize_session": False},
    )
    deleted = result.rowcount
    await db.commit()

    for user_id in affected_user_ids:
        await invalidate_unread_count(redis, user_id)

    logger.info("Deleted %d notifications older than %d days", deleted, days)
    return deleted
