"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from stackit.redis_client import get_redis_or_none as _get_redis_or_none


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client (or None when unavailable) as a FastAPI dependency."""
    yield _get_redis_or_none()
