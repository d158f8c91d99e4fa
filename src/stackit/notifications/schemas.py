"""Pydantic schemas for notification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: int
    type: str
    message: str
    is_read: bool
    question_id: int | None = None
    answer_id: int | None = None
    comment_id: int | None = None
    actor_user_id: int | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadRequest(BaseModel):
    """Ids to mark as read; null marks every unread notification."""

    notification_ids: list[int] | None = Field(None, max_length=500)


class MarkReadResponse(BaseModel):
    updated_count: int


class NotificationStatsResponse(BaseModel):
    total_notifications: int
    unread_count: int
    answer_count: int
    comment_count: int
    mention_count: int
    vote_count: int
    latest_notification: datetime | None = None


class NotificationPreferences(BaseModel):
    """Full preference row. Every flag is required: a write replaces the row."""

    answer_notifications: bool
    comment_notifications: bool
    mention_notifications: bool
    vote_notifications: bool
