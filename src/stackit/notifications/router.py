"""Notification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.auth.dependencies import get_current_user
from stackit.database import get_session
from stackit.db.models import Notification, User
from stackit.dependencies import get_redis_dep
from stackit.notifications.cache import get_unread_count, invalidate_unread_count
from stackit.notifications.preferences import get_preferences, upsert_preferences
from stackit.notifications.schemas import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationListResponse,
    NotificationPreferences,
    NotificationResponse,
    NotificationStatsResponse,
    UnreadCountResponse,
)
from stackit.notifications.service import (
    after_read_state_change,
    delete_notification,
    get_notification,
    get_notification_stats,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    mark_one_as_read,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


def _notification_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        type=n.type,
        message=n.message,
        is_read=n.is_read,
        question_id=n.question_id,
        answer_id=n.answer_id,
        comment_id=n.comment_id,
        actor_user_id=n.actor_user_id,
        created_at=n.created_at,
    )


@router.get("", response_model=NotificationListResponse)
async def list_user_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    type: str | None = Query(None),  # noqa: A002
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List the user's notifications (paginated, newest first)."""
    try:
        notifications, total = await list_notifications(
            db, user.id, page, per_page, unread_only=unread_only, type_=type,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return NotificationListResponse(
        notifications=[_notification_response(n) for n in notifications],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_notification_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_redis_dep),
):
    """Get unread notification count (cached)."""
    count = await get_unread_count(db, redis, user.id)
    return UnreadCountResponse(unread_count=count)


@router.get("/stats", response_model=NotificationStatsResponse)
async def get_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Totals per read state and per type."""
    stats = await get_notification_stats(db, user.id)
    return NotificationStatsResponse(**stats)


@router.get("/preferences", response_model=NotificationPreferences)
async def read_preferences(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get notification preferences (all enabled when never set)."""
    return NotificationPreferences(**await get_preferences(db, user.id))


@router.put("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    body: NotificationPreferences,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Replace notification preferences."""
    await upsert_preferences(db, user.id, **body.model_dump())
    await db.commit()
    return body


@router.put("/read", response_model=MarkReadResponse)
async def mark_notifications_read(
    body: MarkReadRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_redis_dep),
):
    """Mark a list of notifications (or all, when the list is null) as read."""
    count = await mark_as_read(db, user.id, body.notification_ids)
    await db.commit()
    await after_read_state_change(redis, user.id, count, body.notification_ids)
    return MarkReadResponse(updated_count=count)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_redis_dep),
):
    """Mark all notifications as read."""
    count = await mark_all_as_read(db, user.id)
    await db.commit()
    await after_read_state_change(redis, user.id, count)
    return MarkReadResponse(updated_count=count)


@router.get("/{notification_id}", response_model=NotificationResponse)
async def read_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get a single notification."""
    notification = await get_notification(db, user.id, notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return _notification_response(notification)


@router.post("/{notification_id}/read", status_code=200)
async def mark_notification_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_redis_dep),
):
    """Mark a notification as read. Already-read notifications are accepted as-is."""
    changed = await mark_one_as_read(db, user.id, notification_id)
    if changed is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    await after_read_state_change(redis, user.id, changed, [notification_id])
    return {"detail": "Notification marked as read"}


@router.delete("/{notification_id}", status_code=204)
async def remove_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_redis_dep),
):
    """Delete a notification."""
    deleted = await delete_notification(db, user.id, notification_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    await invalidate_unread_count(redis, user.id)
