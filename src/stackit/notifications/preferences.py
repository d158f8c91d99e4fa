"""Per-user notification preference gate.

Opt-out model: a user without a preference row receives every category.
A write always replaces the whole row.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.db.models import NotificationPreference

logger = logging.getLogger(__name__)

CATEGORIES = ("answer", "comment", "mention", "vote")

# category -> column on user_notification_preferences
PREFERENCE_COLUMNS = {category: f"{category}_notifications" for category in CATEGORIES}

DEFAULT_PREFERENCES = {column: True for column in PREFERENCE_COLUMNS.values()}


def should_deliver(preferences: dict, category: str) -> bool:
    """Check a preference dict for one category. Missing keys mean enabled."""
    column = PREFERENCE_COLUMNS.get(category)
    if column is None:
        msg = f"Invalid notification category: {category}. Must be one of {CATEGORIES}"
        raise ValueError(msg)
    return bool(preferences.get(column, True))


def _row_to_dict(row: NotificationPreference) -> dict:
    return {column: getattr(row, column) for column in PREFERENCE_COLUMNS.values()}


async def get_preference_row(db: AsyncSession, user_id: int) -> NotificationPreference | None:
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_preferences(db: AsyncSession, user_id: int) -> dict:
    """Get a user's preference flags, all True when no row exists."""
    row = await get_preference_row(db, user_id)
    if row is None:
        return dict(DEFAULT_PREFERENCES)
    return _row_to_dict(row)


async def is_enabled(db: AsyncSession, user_id: int, category: str) -> bool:
    """Return whether ``user_id`` accepts notifications of ``category``.

    A failed lookup is logged and treated as enabled.
    """
    try:
        preferences = await get_preferences(db, user_id)
    except SQLAlchemyError:
        logger.warning(
            "PreferenceLookupFailure: user_id=%s category=%s, defaulting to enabled",
            user_id, category, exc_info=True,
        )
        await db.rollback()
        return True
    return should_deliver(preferences, category)


async def upsert_preferences(
    db: AsyncSession,
    user_id: int,
    *,
    answer_notifications: bool,
    comment_notifications: bool,
    mention_notifications: bool,
    vote_notifications: bool,
) -> NotificationPreference:
    """Insert or fully replace a user's preference row."""
    row = await get_preference_row(db, user_id)
    if row is None:
        row = NotificationPreference(user_id=user_id)
        db.add(row)

    row.answer_notifications = answer_notifications
    row.comment_notifications = comment_notifications
    row.mention_notifications = mention_notifications
    row.vote_notifications = vote_notifications
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return row
