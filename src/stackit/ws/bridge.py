"""Bridges Redis pub/sub notification channels to WebSocket clients.

Pattern-subscribes to ``notifications:user:*`` (published by the fan-out
service and read-state endpoints) and forwards each message to every open
socket of that user.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from stackit.notifications.push import CHANNEL_PREFIX
from stackit.ws.manager import ConnectionManager, manager

logger = structlog.get_logger()

CHANNEL_PATTERN = f"{CHANNEL_PREFIX}*"


def parse_user_channel(channel: str) -> int | None:
    """Extract the user id from ``notifications:user:<id>``, or None if it is malformed."""
    if not channel.startswith(CHANNEL_PREFIX):
        return None
    try:
        return int(channel[len(CHANNEL_PREFIX):])
    except ValueError:
        return None


class NotificationBridge:
    """Subscribes to per-user notification channels and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis, connections: ConnectionManager = manager) -> None:
        self.redis = redis_client
        self.connections = connections
        self._running = False

    async def handle_message(self, message: dict) -> int:
        """Route one pub/sub message. Returns the number of sockets reached."""
        if message.get("type") != "pmessage":
            return 0

        channel = message.get("channel", "")
        if isinstance(channel, bytes):
            channel = channel.decode()

        user_id = parse_user_channel(channel)
        if user_id is None:
            logger.warning("pubsub_invalid_user_id", channel=channel)
            return 0

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("pubsub_invalid_message", channel=channel)
            return 0

        sent = await self.connections.send_to_user(user_id, payload)
        if sent > 0:
            logger.debug("user_notification_sent", user_id=user_id, message_type=payload.get("type"), recipients=sent)
        return sent

    async def start(self) -> None:
        """Listen until stopped."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(CHANNEL_PATTERN)
        logger.info("notification_bridge_started", pattern=CHANNEL_PATTERN)

        try:
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue
                await self.handle_message(message)
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("notification_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
