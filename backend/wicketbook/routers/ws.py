"""Realtime stream: market and wallet events over WebSocket."""

import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from wicketbook.config import settings
from wicketbook.services.auth_service import user_from_token
from wicketbook.services.websocket_manager import websocket_manager

logger = logging.getLogger("wicketbook.ws")

router = APIRouter()

_COMMANDS = {"subscribe", "unsubscribe", "replace_subscriptions"}


def _token_from_ws(ws: WebSocket) -> str | None:
    return ws.cookies.get("access_token") or ws.query_params.get("token")


async def _resolve_ws_user(token: str | None) -> dict | None:
    try:
        return await user_from_token(token)
    except HTTPException:
        return None


@router.websocket("/ws")
async def websocket_events(ws: WebSocket):
    if not settings.WS_EVENTS_ENABLED:
        await ws.close(code=4003, reason="Realtime disabled")
        return

    user = await _resolve_ws_user(_token_from_ws(ws))
    if user is None:
        await ws.close(code=4001, reason="Unauthorized")
        return

    try:
        connection_id = await websocket_manager.connect(ws, user_id=str(user["_id"]))
    except RuntimeError:
        await ws.close(code=4002, reason="Too many connections")
        return

    try:
        while True:
            message = await ws.receive_json()
            command = message.get("type") if isinstance(message, dict) else None
            if command == "ping":
                await ws.send_json({"type": "pong"})
                continue
            if command not in _COMMANDS:
                await ws.send_json({"type": "error", "data": {"detail": "unsupported_command"}})
                continue
            filters = await websocket_manager.update_filters(
                connection_id, command, message.get("data") or {},
            )
            await ws.send_json({"type": "subscriptions", "data": filters})
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.debug("WS connection %s closed: %s", connection_id, exc)
    finally:
        await websocket_manager.disconnect(connection_id)
