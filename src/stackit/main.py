"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stackit.config import get_settings
from stackit.database import close_db, create_tables, init_db
from stackit.health.router import router as health_router
from stackit.middleware import setup_middleware
from stackit.notifications.dispatch import close_arq_pool
from stackit.notifications.router import router as notifications_router
from stackit.qa.router import router as qa_router
from stackit.redis_client import close_redis, get_redis, init_redis
from stackit.users.router import router as users_router
from stackit.ws.bridge import NotificationBridge
from stackit.ws.manager import manager
from stackit.ws.router import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.create_tables:
        try:
            await create_tables()
        except Exception:
            logger.warning("Table creation failed (database may be unreachable)", exc_info=True)
    await init_redis(settings.redis_url)

    manager.max_connections_per_user = settings.ws_max_connections_per_user

    # Start the Redis pub/sub -> WebSocket bridge
    bridge = NotificationBridge(get_redis())
    bridge_task = asyncio.create_task(bridge.start())

    yield

    # Shutdown bridge
    await bridge.stop()
    bridge_task.cancel()
    try:
        await bridge_task
    except asyncio.CancelledError:
        pass

    await close_arq_pool()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="StackIt API",
        description="Backend API for StackIt, a Q&A platform with real-time notifications",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(qa_router)
    app.include_router(notifications_router)
    app.include_router(ws_router)

    return app


app = create_app()
