"""arq worker for notification fan-out and retention cleanup.

Runs as a separate process. Content requests enqueue one
``fan_out_content_event`` job per event when ``STACKIT_FANOUT_MODE=queue``;
the nightly cron deletes notifications past the retention window.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from stackit.config import get_settings
from stackit.database import close_db, get_session_factory, init_db
from stackit.notifications.events import parse_event
from stackit.notifications.fanout import on_content_created
from stackit.notifications.service import cleanup_old_notifications
from stackit.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the database engine and the Redis pool used for cache and pub/sub."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    ctx["redis"] = get_redis()
    logger.info("Notification worker started (fanout_mode=%s)", settings.fanout_mode)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_db()
    await close_redis()
    logger.info("Notification worker shut down")


async def fan_out_content_event(ctx: dict, payload: dict) -> list[int]:  # type: ignore[type-arg]
    """Fan one enqueued content event out into notifications.

    A malformed payload raises, so arq records the job as failed instead of
    retrying it forever.
    """
    event = parse_event(payload)
    async with get_session_factory()() as db:
        created = await on_content_created(db, ctx.get("redis"), event)
    logger.info("Fan-out job for %s created %d notifications", event.kind, len(created))
    return created


async def cleanup_notifications(ctx: dict) -> int:  # type: ignore[type-arg]
    """Nightly task: delete notifications older than the retention window."""
    days = get_settings().notification_retention_days
    async with get_session_factory()() as db:
        deleted = await cleanup_old_notifications(db, ctx.get("redis"), days=days)
    if deleted > 0:
        logger.info("Retention cleanup removed %d notifications", deleted)
    return deleted


class WorkerSettings:
    """arq worker settings for the notification worker."""

    functions = [fan_out_content_event, cleanup_notifications]
    cron_jobs = [
        cron(cleanup_notifications, hour={get_settings().cleanup_cron_hour}, minute={0}),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 10
    max_tries = 3
