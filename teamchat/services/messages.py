"""Message log — append-only per-channel history.

Ordering is ``(created_at, id)``; the autoincrement id breaks timestamp ties
so a page boundary never splits or repeats messages.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import assert_never

from sqlalchemy import and_, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamchat.core.config import get_settings
from teamchat.core.errors import Forbidden, Invalid, NotFound
from teamchat.models.channel import Channel, ChannelType
from teamchat.models.message import (
    MAX_MESSAGE_ID,
    Message,
    MessagePage,
    MessagePreview,
    MessageRead,
    MessageType,
    SystemAction,
)
from teamchat.services import membership, users

logger = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────

async def _get_channel(
    session: AsyncSession, channel_id: uuid.UUID, tenant_id: uuid.UUID | None = None
) -> Channel:
    stmt = select(Channel).where(Channel.id == channel_id)
    if tenant_id is not None:
        stmt = stmt.where(Channel.tenant_id == tenant_id)
    result = await session.execute(stmt)
    channel = result.scalar_one_or_none()
    if channel is None:
        raise NotFound("Channel not found")
    return channel


def _readable(channel_type: ChannelType, is_member: bool) -> bool:
    """Anyone in the tenant may read PUBLIC history; others need membership."""
    match channel_type:
        case ChannelType.PUBLIC:
            return True
        case ChannelType.PRIVATE | ChannelType.DIRECT:
            return is_member
        case _:
            assert_never(channel_type)


def _parse_cursor(before: str) -> int | datetime:
    """A cursor is either a message id or an ISO-8601 timestamp."""
    before = before.strip()
    if before.isascii() and before.isdigit():
        cursor = int(before)
        if cursor > MAX_MESSAGE_ID:
            raise Invalid("'before' is not a valid message id")
        return cursor
    try:
        parsed = datetime.fromisoformat(before.replace("Z", "+00:00"))
    except ValueError as exc:
        raise Invalid("'before' must be a message id or ISO timestamp") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _clamp_limit(limit: int | None) -> int:
    settings = get_settings()
    if limit is None:
        return settings.default_page_size
    return max(1, min(limit, settings.max_page_size))


async def to_reads(session: AsyncSession, rows: Iterable[Message]) -> list[MessageRead]:
    """Attach author profiles to stored messages."""
    rows = list(rows)
    profiles = await users.briefs(session, (m.user_id for m in rows))
    return [
        MessageRead(
            id=m.id,
            channel_id=m.channel_id,
            user_id=m.user_id,
            content=m.content,
            type=m.type,
            created_at=m.created_at,
            user=profiles.get(m.user_id),
        )
        for m in rows
    ]


async def _persist(
    session: AsyncSession,
    channel: Channel,
    user_id: uuid.UUID,
    content: str,
    message_type: MessageType,
) -> Message:
    message = Message(
        channel_id=channel.id,
        user_id=user_id,
        content=content,
        type=message_type,
    )
    session.add(message)
    channel.touch(message.created_at)
    session.add(channel)
    await session.flush()
    return message


# ── Operations ────────────────────────────────────────────────

async def append(
    session: AsyncSession,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    content: str,
    message_type: MessageType = MessageType.TEXT,
    tenant_id: uuid.UUID | None = None,
) -> MessageRead:
    """Persist a user message and bump the channel's ``updated_at``.

    Membership is required to post in every channel type. Commits before
    returning, so callers may broadcast the result immediately.
    """
    match message_type:
        case MessageType.TEXT:
            pass
        case MessageType.SYSTEM:
            raise Invalid("System messages cannot be sent by clients")
        case _:
            assert_never(message_type)

    if not content or not content.strip():
        raise Invalid("Message content must not be empty")

    channel = await _get_channel(session, channel_id, tenant_id)
    if not await membership.is_member(session, channel.id, user_id):
        raise Forbidden("You must be a member of this channel to send messages")

    message = await _persist(session, channel, user_id, content, message_type)
    await session.commit()
    logger.debug("Message %s appended to channel %s", message.id, channel.id)

    [read] = await to_reads(session, [message])
    return read


async def append_system(
    session: AsyncSession,
    channel: Channel,
    user_id: uuid.UUID,
    action: SystemAction,
) -> Message:
    """Record a join/leave notice. Runs inside the caller's transaction."""
    match action:
        case SystemAction.JOIN:
            verb = "joined"
        case SystemAction.LEAVE:
            verb = "left"
        case _:
            assert_never(action)

    user = await users.get_user(session, user_id)
    name = user.name_for_notices if user is not None else "Someone"
    return await _persist(
        session, channel, user_id, f"{name} {verb} the channel", MessageType.SYSTEM
    )


async def page(
    session: AsyncSession,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    limit: int | None = None,
    before: str | None = None,
) -> MessagePage:
    """Return up to ``limit`` messages strictly older than ``before``, newest first."""
    channel = await _get_channel(session, channel_id, tenant_id)
    is_member = await membership.is_member(session, channel.id, user_id)
    if not _readable(channel.type, is_member):
        raise Forbidden("You do not have access to this channel")

    limit = _clamp_limit(limit)
    stmt = select(Message).where(Message.channel_id == channel.id)

    if before:
        cursor = _parse_cursor(before)
        if isinstance(cursor, int):
            anchor = await session.get(Message, cursor)
            if anchor is None or anchor.channel_id != channel.id:
                raise NotFound("Cursor message not found")
            stmt = stmt.where(
                or_(
                    Message.created_at < anchor.created_at,
                    and_(
                        Message.created_at == anchor.created_at,
                        Message.id < anchor.id,  # type: ignore[operator]
                    ),
                )
            )
        else:
            stmt = stmt.where(Message.created_at < cursor)

    stmt = stmt.order_by(
        Message.created_at.desc(),  # type: ignore[union-attr]
        Message.id.desc(),  # type: ignore[union-attr]
    ).limit(limit)
    result = await session.execute(stmt)
    rows = result.scalars().all()

    return MessagePage(
        messages=await to_reads(session, rows),
        has_more=len(rows) == limit,
    )


async def delete_message(session: AsyncSession, message_id: int, user_id: uuid.UUID) -> int:
    """Delete the caller's own message.

    Returns rows affected. A missing message or someone else's message is a
    silent no-op, never an error.
    """
    stmt = delete(Message).where(Message.id == message_id, Message.user_id == user_id)
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount


async def remove_all(session: AsyncSession, channel_id: uuid.UUID) -> None:
    await session.execute(delete(Message).where(Message.channel_id == channel_id))


async def count_by_channel(
    session: AsyncSession, channel_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, int]:
    ids = set(channel_ids)
    if not ids:
        return {}
    stmt = (
        select(Message.channel_id, func.count())
        .where(Message.channel_id.in_(ids))  # type: ignore[attr-defined]
        .group_by(Message.channel_id)
    )
    result = await session.execute(stmt)
    counts = {cid: 0 for cid in ids}
    counts.update({cid: n for cid, n in result.all()})
    return counts


async def latest_previews(
    session: AsyncSession, channel_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, MessagePreview]:
    """Most recent non-SYSTEM message per channel, for DM sidebars.

    One query per channel; callers only see this function, so it can be
    replaced by a single windowed query without touching them.
    """
    latest: dict[uuid.UUID, Message] = {}
    for channel_id in channel_ids:
        stmt = (
            select(Message)
            .where(
                Message.channel_id == channel_id,
                Message.type != MessageType.SYSTEM,
            )
            .order_by(Message.created_at.desc(), Message.id.desc())  # type: ignore[union-attr]
            .limit(1)
        )
        result = await session.execute(stmt)
        message = result.scalar_one_or_none()
        if message is not None:
            latest[channel_id] = message

    profiles = await users.briefs(session, (m.user_id for m in latest.values()))
    return {
        channel_id: MessagePreview(
            content=m.content,
            created_at=m.created_at,
            user=profiles.get(m.user_id),
        )
        for channel_id, m in latest.items()
    }
