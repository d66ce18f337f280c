"""
api/realtime.py -- Realtime WebSocket channel.

  WS /ws

Handshake: the upgrade request must carry the same access_token cookie as
HTTP. authenticate_websocket() verifies it before accept(); on failure the
socket is closed with policy-violation code 1008 and the literal reason
"Unauthorized", which the server turns into a rejected upgrade. No message
is ever exchanged on an unauthenticated connection.

After accept the server greets with {"type": "hello", ...} and then answers
JSON messages by "type". Only the heartbeat exists today:

  {"type": "ping"}   -> {"type": "pong", "user_id": <id>}
  unknown type       -> {"type": "error", "code": "unknown_type"}
  not a JSON object  -> {"type": "error", "code": "invalid_message"}
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from auth.dependencies import authenticate_websocket
from auth.models import SessionContext

logger = logging.getLogger("matcha.realtime")

UNAUTHORIZED_REASON = "Unauthorized"

router = APIRouter()


@router.websocket("/ws")
async def realtime(websocket: WebSocket) -> None:
    settings = websocket.app.state.settings
    session = authenticate_websocket(websocket, settings.cors_origins)
    if session is None:
        client = websocket.client.host if websocket.client else "unknown"
        logger.warning("realtime handshake rejected client=%s", client)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=UNAUTHORIZED_REASON)
        return

    await websocket.accept()
    websocket.state.session = session
    logger.info("realtime connected user_id=%s", session.user_id)
    await websocket.send_json({"type": "hello", "message": "connected", "user_id": session.user_id})
    try:
        while True:
            raw = await websocket.receive_text()
            await websocket.send_json(_dispatch(raw, session))
    except WebSocketDisconnect:
        logger.info("realtime disconnected user_id=%s", session.user_id)


def _dispatch(raw: str, session: SessionContext) -> dict:
    try:
        message = json.loads(raw)
    except ValueError:
        return {"type": "error", "code": "invalid_message"}
    if not isinstance(message, dict):
        return {"type": "error", "code": "invalid_message"}

    if message.get("type") == "ping":
        return {"type": "pong", "user_id": session.user_id}
    return {"type": "error", "code": "unknown_type"}
