"""WebSocket endpoint for realtime channel fan-out.

Frames are JSON objects ``{"event": "<name>", "data": {...}}`` in both
directions. The connecting client authenticates with ``?token=<jwt>``.
"""

import asyncio
import contextlib
import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from teamchat.api.deps import resolve_jwt
from teamchat.core.database import async_session_factory
from teamchat.services.gateway import ERROR, ChatGateway, Connection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# One gateway per process; rooms are not shared across processes.
gateway = ChatGateway(async_session_factory)


def get_gateway() -> ChatGateway:
    """FastAPI dependency returning the process-wide gateway."""
    return gateway


Gateway = Annotated[ChatGateway, Depends(get_gateway)]


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    chat_gateway: Gateway,
    token: str = Query(default=""),
) -> None:
    try:
        auth = resolve_jwt(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    conn = Connection(tenant_id=auth.tenant_id, user_id=auth.user_id, user_role=auth.user_role)
    chat_gateway.connect(conn)
    writer = asyncio.create_task(conn.pump(websocket.send_json))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                conn.emit(ERROR, {"message": "Frames must be JSON objects"})
                continue
            if not isinstance(frame, dict):
                conn.emit(ERROR, {"message": "Frames must be JSON objects"})
                continue
            await chat_gateway.handle(conn, frame.get("event"), frame.get("data"))
    except WebSocketDisconnect:
        pass
    finally:
        chat_gateway.disconnect(conn)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            await writer
