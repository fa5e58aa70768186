"""Realtime fan-out gateway.

Connections subscribe to per-channel rooms (``channel:<id>``). Inbound
socket events are dispatched by :class:`ChatGateway`; new messages are
persisted through the message log *before* they are broadcast, so a client
that re-pages history never misses something it saw live.

Room state lives in :class:`RoomRegistry`, owned by the gateway and only
mutated from the event path. Broadcasting enqueues onto each connection's
outbox and never awaits socket I/O; a per-connection writer task drains the
outbox to the wire.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.core.errors import ChatError, Forbidden
from teamchat.models.message import MessageRead, MessageType
from teamchat.services import channels, messages

logger = logging.getLogger(__name__)

ROOM_PREFIX = "channel:"

# Inbound events
JOIN_CHANNEL = "joinChannel"
LEAVE_CHANNEL = "leaveChannel"
SEND_MESSAGE = "sendMessage"
TYPING = "typing"
STOP_TYPING = "stopTyping"

# Outbound events
NEW_MESSAGE = "newMessage"
USER_TYPING = "userTyping"
USER_STOPPED_TYPING = "userStoppedTyping"
ERROR = "error"


def room_key(channel_id: uuid.UUID | str) -> str:
    return f"{ROOM_PREFIX}{channel_id}"


# ── Inbound payloads ──────────────────────────────────────────

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChannelRef(_Payload):
    channel_id: uuid.UUID = Field(alias="channelId")


class SendMessagePayload(ChannelRef):
    user_id: uuid.UUID | None = Field(default=None, alias="userId")
    content: str = Field(min_length=1, max_length=32000)
    type: MessageType = MessageType.TEXT


class TypingPayload(ChannelRef):
    user_id: uuid.UUID | None = Field(default=None, alias="userId")
    user_name: str = Field(default="", alias="userName", max_length=255)


# ── Connection ────────────────────────────────────────────────

class Connection:
    """One connected socket and the principal it was authenticated as."""

    def __init__(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        user_role: str = "MEMBER",
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.user_role = user_role
        self.outbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

    def __repr__(self) -> str:
        return f"<Connection {self.id} user={self.user_id}>"

    def emit(self, event: str, data: dict[str, Any]) -> None:
        """Queue an outbound frame. Never blocks."""
        self.outbox.put_nowait({"event": event, "data": data})

    def close(self) -> None:
        self.outbox.put_nowait(None)

    async def pump(self, send: Callable[[dict[str, Any]], Awaitable[None]]) -> None:
        """Write queued frames to the socket until :meth:`close` is called."""
        while True:
            frame = await self.outbox.get()
            if frame is None:
                return
            await send(frame)


# ── Rooms ─────────────────────────────────────────────────────

class RoomRegistry:
    """Room key → connections currently receiving broadcasts for it."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Connection]] = {}

    def join(self, key: str, conn: Connection) -> None:
        self._rooms.setdefault(key, set()).add(conn)

    def leave(self, key: str, conn: Connection) -> None:
        members = self._rooms.get(key)
        if not members:
            return
        members.discard(conn)
        if not members:
            del self._rooms[key]

    def drop(self, conn: Connection) -> list[str]:
        """Remove a connection from every room; returns the rooms it left."""
        left = sorted(self.rooms_of(conn))
        for key in left:
            self.leave(key, conn)
        return left

    def members(self, key: str) -> frozenset[Connection]:
        return frozenset(self._rooms.get(key, ()))

    def rooms_of(self, conn: Connection) -> set[str]:
        return {key for key, members in self._rooms.items() if conn in members}

    def broadcast(
        self,
        key: str,
        event: str,
        data: dict[str, Any],
        exclude: Connection | None = None,
    ) -> int:
        delivered = 0
        for conn in self.members(key):
            if conn is exclude:
                continue
            conn.emit(event, data)
            delivered += 1
        return delivered


# ── Gateway ───────────────────────────────────────────────────

SessionFactory = Callable[[], AsyncSession]


class ChatGateway:
    """Dispatches socket events and fans results out to rooms."""

    def __init__(self, session_factory: SessionFactory, rooms: RoomRegistry | None = None) -> None:
        self._session_factory = session_factory
        self.rooms = rooms or RoomRegistry()
        self._handlers: dict[str, Callable[[Connection, dict[str, Any]], Awaitable[None]]] = {
            JOIN_CHANNEL: self._on_join_channel,
            LEAVE_CHANNEL: self._on_leave_channel,
            SEND_MESSAGE: self._on_send_message,
            TYPING: self._on_typing,
            STOP_TYPING: self._on_stop_typing,
        }

    def connect(self, conn: Connection) -> None:
        logger.info("Socket connected: %s (tenant %s)", conn, conn.tenant_id)

    def disconnect(self, conn: Connection) -> None:
        """Transport-level disconnect: leaves rooms, never touches membership."""
        rooms = self.rooms.drop(conn)
        conn.close()
        logger.info("Socket disconnected: %s (left %d room(s))", conn, len(rooms))

    async def handle(self, conn: Connection, event: str | None, data: Any) -> None:
        """Process one inbound event to completion.

        Failures are reported to the sender only as an ``error`` event.
        """
        handler = self._handlers.get(event or "")
        if handler is None:
            conn.emit(ERROR, {"message": f"Unknown event: {event}"})
            return
        if not isinstance(data, dict):
            conn.emit(ERROR, {"message": f"Invalid payload for {event}"})
            return

        try:
            await handler(conn, data)
        except ValidationError:
            conn.emit(ERROR, {"message": f"Invalid payload for {event}"})
        except ChatError as exc:
            conn.emit(ERROR, {"message": exc.message})
        except Exception:
            logger.exception("Unhandled error processing %s for %s", event, conn)
            conn.emit(ERROR, {"message": "Failed to process event"})

    def publish(self, message: MessageRead) -> int:
        """Broadcast a stored message to its room, sender included."""
        return self.rooms.broadcast(
            room_key(message.channel_id),
            NEW_MESSAGE,
            message.model_dump(mode="json"),
        )

    # ── Handlers ──────────────────────────────────────────────

    async def _on_join_channel(self, conn: Connection, data: dict[str, Any]) -> None:
        # Tenant-scoped lookup only; sends are authorised by the message log.
        ref = ChannelRef.model_validate(data)
        async with self._session_factory() as session:
            await channels.get_row(session, ref.channel_id, conn.tenant_id)
        self.rooms.join(room_key(ref.channel_id), conn)
        logger.debug("%s joined room %s", conn, ref.channel_id)

    async def _on_leave_channel(self, conn: Connection, data: dict[str, Any]) -> None:
        ref = ChannelRef.model_validate(data)
        self.rooms.leave(room_key(ref.channel_id), conn)
        logger.debug("%s left room %s", conn, ref.channel_id)

    async def _on_send_message(self, conn: Connection, data: dict[str, Any]) -> None:
        payload = SendMessagePayload.model_validate(data)
        if payload.user_id is not None and payload.user_id != conn.user_id:
            raise Forbidden("Cannot send messages as another user")

        async with self._session_factory() as session:
            stored = await messages.append(
                session,
                payload.channel_id,
                conn.user_id,
                payload.content,
                payload.type,
                tenant_id=conn.tenant_id,
            )
        self.publish(stored)

    async def _on_typing(self, conn: Connection, data: dict[str, Any]) -> None:
        payload = TypingPayload.model_validate(data)
        self.rooms.broadcast(
            room_key(payload.channel_id),
            USER_TYPING,
            {"userId": str(conn.user_id), "userName": payload.user_name},
            exclude=conn,
        )

    async def _on_stop_typing(self, conn: Connection, data: dict[str, Any]) -> None:
        payload = TypingPayload.model_validate(data)
        self.rooms.broadcast(
            room_key(payload.channel_id),
            USER_STOPPED_TYPING,
            {"userId": str(conn.user_id)},
            exclude=conn,
        )
