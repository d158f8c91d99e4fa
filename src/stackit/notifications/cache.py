"""Unread notification count, cached in Redis.

The cache is never authoritative. Writes that change a user's unread set
delete the key (after the store write is committed) and the next read
recomputes it from the database. Redis failures degrade to store reads.
"""

from __future__ import annotations

import structlog
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.config import get_settings
from stackit.db.models import Notification

logger = structlog.get_logger()

UNREAD_COUNT_KEY = "user:{user_id}:unread_count"


def unread_count_key(user_id: int) -> str:
    return UNREAD_COUNT_KEY.format(user_id=user_id)


async def count_unread(db: AsyncSession, user_id: int) -> int:
    """Count unread notifications straight from the store."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()


async def get_unread_count(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    ttl_seconds: int | None = None,
) -> int:
    """Get a user's unread count, reading through the Redis cache."""
    key = unread_count_key(user_id)

    if redis is not None:
        try:
            cached = await redis.get(key)  # type: ignore[union-attr]
        except (RedisError, OSError):
            logger.warning("CacheUnavailable", op="get", key=key, exc_info=True)
            return await count_unread(db, user_id)
        if cached is not None:
            try:
                return int(cached)
            except (TypeError, ValueError):
                logger.warning("unread_count_cache_corrupt", key=key, value=cached)

    count = await count_unread(db, user_id)

    if redis is not None:
        ttl = ttl_seconds if ttl_seconds is not None else get_settings().unread_count_cache_ttl_seconds
        try:
            await redis.set(key, str(count), ex=ttl)  # type: ignore[union-attr]
        except (RedisError, OSError):
            logger.warning("CacheUnavailable", op="set", key=key, exc_info=True)

    return count


async def invalidate_unread_count(redis: object | None, user_id: int) -> None:
    """Drop a user's cached unread count. Idempotent, never raises."""
    if redis is None:
        return
    try:
        await redis.delete(unread_count_key(user_id))  # type: ignore[union-attr]
    except (RedisError, OSError):
        logger.warning("CacheUnavailable", op="delete", user_id=user_id, exc_info=True)
