"""Hand content events to the fan-out service.

``STACKIT_FANOUT_MODE`` picks how:

- ``inline``: run fan-out before the request returns.
- ``background``: run it as a FastAPI background task after the response.
- ``queue``: enqueue an arq job for the notification worker (at-least-once).

Dispatch never fails the content request that triggered it.
"""

from __future__ import annotations

import structlog
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from fastapi import BackgroundTasks

from stackit.config import get_settings
from stackit.database import get_session_factory
from stackit.notifications.events import ContentEvent
from stackit.notifications.fanout import on_content_created
from stackit.redis_client import get_redis_or_none

logger = structlog.get_logger()

FANOUT_JOB = "fan_out_content_event"

_arq_pool: ArqRedis | None = None


async def get_arq_pool() -> ArqRedis:
    """Lazily open the arq connection used to enqueue fan-out jobs."""
    global _arq_pool  # noqa: PLW0603
    if _arq_pool is None:
        _arq_pool = await create_pool(RedisSettings.from_dsn(get_settings().arq_redis_url))
    return _arq_pool


async def close_arq_pool() -> None:
    global _arq_pool  # noqa: PLW0603
    if _arq_pool is not None:
        await _arq_pool.aclose()
        _arq_pool = None


async def run_fanout(event: ContentEvent) -> list[int]:
    """Run fan-out in a fresh session. Used inline and as a background task."""
    try:
        async with get_session_factory()() as db:
            return await on_content_created(db, get_redis_or_none(), event)
    except Exception:
        logger.exception("fanout_failed", kind=event.kind, actor_id=event.actor_id)
        return []


async def enqueue_fanout(event: ContentEvent) -> None:
    pool = await get_arq_pool()
    await pool.enqueue_job(FANOUT_JOB, event.model_dump(mode="json"))


async def dispatch_content_event(
    event: ContentEvent,
    background_tasks: BackgroundTasks | None = None,
) -> None:
    """Route an event to fan-out according to the configured mode."""
    mode = get_settings().fanout_mode
    try:
        if mode == "queue":
            await enqueue_fanout(event)
        elif mode == "background" and background_tasks is not None:
            background_tasks.add_task(run_fanout, event)
        else:
            await run_fanout(event)
    except Exception:
        logger.exception("fanout_dispatch_failed", kind=event.kind, mode=mode)
