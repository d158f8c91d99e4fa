"""WebSocket endpoint for real-time notifications."""

import json
import uuid

import jwt
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from stackit.auth.jwt import verify_token
from stackit.ws.manager import manager

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/ws/notifications")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Per-user notification stream, authenticated by a JWT query param.

    Protocol:
        Client -> Server:
            {"action": "ping"}

        Server -> Client:
            {"type": "new_notification", "notification": {...}, "timestamp": "..."}
            {"type": "notifications_read", "count": 3, "notification_ids": [...], "timestamp": "..."}
            {"type": "pong"}
            {"type": "error", "message": "..."}
    """
    try:
        payload = verify_token(token, expected_type="access")
        user_id = int(payload["sub"])
    except jwt.InvalidTokenError as e:
        logger.info("ws_auth_failed", reason=str(e))
        await websocket.close(code=4001, reason="Authentication failed")
        return

    conn_id = str(uuid.uuid4())
    if not await manager.connect(websocket, conn_id, user_id):
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            action = msg.get("action") if isinstance(msg, dict) else None
            if action == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
