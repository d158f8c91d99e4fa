"""Unit tests for the WebSocket ConnectionManager."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from stackit.ws.manager import ConnectionManager


@pytest.fixture
def mgr() -> ConnectionManager:
    """Fresh ConnectionManager for each test."""
    return ConnectionManager(max_connections_per_user=2)


def _make_ws(*, fail_send: bool = False) -> MagicMock:
    """Create a mock WebSocket."""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.close = AsyncMock()
    if fail_send:
        ws.send_text = AsyncMock(side_effect=RuntimeError("connection closed"))
    else:
        ws.send_text = AsyncMock()
    return ws


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_registers_client(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        assert await mgr.connect(ws, "conn-1", user_id=42) is True
        ws.accept.assert_awaited_once()
        assert mgr.connection_count == 1
        assert mgr.get_stats() == {"total_connections": 1, "unique_users": 1}

    @pytest.mark.asyncio
    async def test_connect_multiple_same_user(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.connect(_make_ws(), "conn-2", user_id=42)
        assert mgr.connection_count == 2
        assert mgr.user_connection_count(42) == 2
        assert mgr.get_stats()["unique_users"] == 1

    @pytest.mark.asyncio
    async def test_per_user_limit(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.connect(_make_ws(), "conn-2", user_id=42)
        ws = _make_ws()
        assert await mgr.connect(ws, "conn-3", user_id=42) is False
        ws.accept.assert_not_awaited()
        ws.close.assert_awaited_once()
        assert mgr.connection_count == 2


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_cleans_up(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.disconnect("conn-1")
        assert mgr.connection_count == 0
        assert mgr.get_stats()["unique_users"] == 0

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self, mgr: ConnectionManager) -> None:
        await mgr.disconnect("missing")


class TestSendToUser:
    @pytest.mark.asyncio
    async def test_sends_to_every_connection(self, mgr: ConnectionManager) -> None:
        ws1, ws2, other = _make_ws(), _make_ws(), _make_ws()
        await mgr.connect(ws1, "conn-1", user_id=42)
        await mgr.connect(ws2, "conn-2", user_id=42)
        await mgr.connect(other, "conn-3", user_id=7)

        sent = await mgr.send_to_user(42, {"type": "new_notification"})

        assert sent == 2
        payload = json.loads(ws1.send_text.call_args[0][0])
        assert payload == {"type": "new_notification"}
        ws2.send_text.assert_awaited_once()
        other.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_connections(self, mgr: ConnectionManager) -> None:
        assert await mgr.send_to_user(99, {"type": "new_notification"}) == 0

    @pytest.mark.asyncio
    async def test_failed_send_disconnects(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(fail_send=True), "conn-1", user_id=42)
        await mgr.connect(_make_ws(), "conn-2", user_id=42)

        assert await mgr.send_to_user(42, {"type": "new_notification"}) == 1
        assert mgr.user_connection_count(42) == 1
