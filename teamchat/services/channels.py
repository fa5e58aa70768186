"""Channel directory — create, find, list and delete channels.

Visibility rules:
  * PUBLIC channels are listed to everyone in the tenant.
  * PRIVATE channels are listed to their creator and members.
  * DIRECT channels never appear in the channel list; see ``list_direct``.

Self-service ``join`` / ``leave`` apply to PUBLIC channels only. PRIVATE
membership is managed by admins and the channel creator.
"""

import logging
import uuid
from collections.abc import Sequence
from typing import assert_never

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select

from teamchat.core.errors import Forbidden, Invalid, NotFound
from teamchat.models.channel import Channel, ChannelCreate, ChannelRead, ChannelType, DirectChannelRead
from teamchat.models.membership import MemberRead, MemberRole, Membership
from teamchat.models.message import SystemAction
from teamchat.models.user import is_admin
from teamchat.services import membership, messages, users

logger = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────

def _member_channel_ids(user_id: uuid.UUID):
    return select(Membership.channel_id).where(Membership.user_id == user_id)


def _listing_clause(channel_type: ChannelType, user_id: uuid.UUID) -> ColumnElement[bool] | None:
    match channel_type:
        case ChannelType.PUBLIC:
            return Channel.type == ChannelType.PUBLIC
        case ChannelType.PRIVATE:
            return and_(
                Channel.type == ChannelType.PRIVATE,
                or_(
                    Channel.created_by == user_id,
                    Channel.id.in_(_member_channel_ids(user_id)),  # type: ignore[attr-defined]
                ),
            )
        case ChannelType.DIRECT:
            return None
        case _:
            assert_never(channel_type)


async def _to_reads(
    session: AsyncSession,
    channels: Sequence[Channel],
    with_counts: bool = False,
) -> list[ChannelRead]:
    ids = [c.id for c in channels]
    members = await membership.members_by_channel(session, ids)
    counts = await messages.count_by_channel(session, ids) if with_counts else {}
    return [
        ChannelRead(
            id=c.id,
            tenant_id=c.tenant_id,
            name=c.name,
            description=c.description,
            type=c.type,
            created_by=c.created_by,
            created_at=c.created_at,
            updated_at=c.updated_at,
            members=members.get(c.id, []),
            message_count=counts.get(c.id),
        )
        for c in channels
    ]


async def get_row(
    session: AsyncSession, channel_id: uuid.UUID, tenant_id: uuid.UUID
) -> Channel:
    """Load a channel scoped to the tenant.

    A channel from another tenant is reported as missing so that ids cannot
    be probed across tenants.
    """
    stmt = select(Channel).where(Channel.id == channel_id, Channel.tenant_id == tenant_id)
    result = await session.execute(stmt)
    channel = result.scalar_one_or_none()
    if channel is None:
        raise NotFound("Channel not found")
    return channel


# ── Create / read ─────────────────────────────────────────────

async def create(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    user_role: str,
    body: ChannelCreate,
) -> ChannelRead:
    """Create a channel with the caller as its single OWNER."""
    if not is_admin(user_role):
        raise Forbidden("Only admins can create channels")

    match body.type:
        case ChannelType.PUBLIC | ChannelType.PRIVATE:
            pass
        case ChannelType.DIRECT:
            raise Invalid("Direct message channels are created through direct messages")
        case _:
            assert_never(body.type)

    channel = Channel(
        tenant_id=tenant_id,
        name=body.name,
        description=body.description,
        type=body.type,
        created_by=user_id,
    )
    session.add(channel)
    await session.flush()  # populate channel.id

    session.add(Membership(channel_id=channel.id, user_id=user_id, role=MemberRole.OWNER))
    await session.commit()

    logger.info("Channel %s (%s) created in tenant %s", channel.id, channel.type, tenant_id)
    [read] = await _to_reads(session, [channel])
    return read


async def get(
    session: AsyncSession, channel_id: uuid.UUID, tenant_id: uuid.UUID
) -> ChannelRead:
    channel = await get_row(session, channel_id, tenant_id)
    [read] = await _to_reads(session, [channel])
    return read


async def list_visible(
    session: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID
) -> list[ChannelRead]:
    clauses = [
        clause
        for channel_type in ChannelType
        if (clause := _listing_clause(channel_type, user_id)) is not None
    ]
    stmt = (
        select(Channel)
        .where(Channel.tenant_id == tenant_id, or_(*clauses))
        .order_by(Channel.updated_at.desc())  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    return await _to_reads(session, result.scalars().all(), with_counts=True)


async def list_direct(
    session: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID
) -> list[DirectChannelRead]:
    """DM channels of the user, each with its latest non-system message."""
    stmt = (
        select(Channel)
        .where(
            Channel.tenant_id == tenant_id,
            Channel.type == ChannelType.DIRECT,
            Channel.id.in_(_member_channel_ids(user_id)),  # type: ignore[attr-defined]
        )
        .order_by(Channel.updated_at.desc())  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    channels = result.scalars().all()

    reads = await _to_reads(session, channels, with_counts=True)
    previews = await messages.latest_previews(session, [c.id for c in channels])
    return [
        DirectChannelRead(**read.model_dump(), last_message=previews.get(read.id))
        for read in reads
    ]


async def list_available(
    session: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID
) -> list[ChannelRead]:
    """PUBLIC channels the user has not joined yet."""
    stmt = (
        select(Channel)
        .where(
            Channel.tenant_id == tenant_id,
            Channel.type == ChannelType.PUBLIC,
            Channel.id.not_in(_member_channel_ids(user_id)),  # type: ignore[attr-defined]
        )
        .order_by(Channel.updated_at.desc())  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    return await _to_reads(session, result.scalars().all(), with_counts=True)


# ── Delete ────────────────────────────────────────────────────

async def delete_channel(
    session: AsyncSession,
    channel_id: uuid.UUID,
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    user_role: str,
) -> None:
    channel = await get_row(session, channel_id, tenant_id)
    if not (is_admin(user_role) or channel.created_by == user_id):
        raise Forbidden("Only admins or the channel creator can delete channels")

    await messages.remove_all(session, channel.id)
    await membership.remove_all(session, channel.id)
    await session.delete(channel)
    await session.commit()
    logger.info("Channel %s deleted by %s", channel.id, user_id)


# ── Self-service membership ───────────────────────────────────

async def join(
    session: AsyncSession,
    channel_id: uuid.UUID,
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
) -> MemberRead:
    """Join a PUBLIC channel. Joining twice returns the existing membership."""
    channel = await get_row(session, channel_id, tenant_id)
    match channel.type:
        case ChannelType.PUBLIC:
            pass
        case ChannelType.PRIVATE | ChannelType.DIRECT:
            raise Forbidden("Only public channels can be joined")
        case _:
            assert_never(channel.type)

    member, created = await membership.add(session, channel.id, user_id)
    if created:
        await messages.append_system(session, channel, user_id, SystemAction.JOIN)
        await session.commit()
        logger.info("User %s joined channel %s", user_id, channel.id)

    [read] = await membership.to_reads(session, [member])
    return read


async def leave(
    session: AsyncSession,
    channel_id: uuid.UUID,
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    channel = await get_row(session, channel_id, tenant_id)
    match channel.type:
        case ChannelType.PUBLIC | ChannelType.PRIVATE:
            pass
        case ChannelType.DIRECT:
            raise Forbidden("Direct message channels cannot be left")
        case _:
            assert_never(channel.type)

    member = await membership.get(session, channel.id, user_id)
    if member is None:
        raise NotFound("You are not a member of this channel")
    if member.role == MemberRole.OWNER:
        raise Forbidden("The channel owner cannot leave the channel")

    # A concurrent leave may already have removed the row; only the winner
    # records the notice.
    if await membership.remove(session, channel.id, user_id):
        await messages.append_system(session, channel, user_id, SystemAction.LEAVE)
        logger.info("User %s left channel %s", user_id, channel.id)
    await session.commit()


# ── Managed membership ────────────────────────────────────────

async def add_members(
    session: AsyncSession,
    channel_id: uuid.UUID,
    tenant_id: uuid.UUID,
    user_ids: Sequence[uuid.UUID],
) -> list[MemberRead]:
    """Add tenant users to a channel; already-present users are kept as is.

    The whole batch is rejected if any id is outside the tenant.
    """
    channel = await get_row(session, channel_id, tenant_id)
    wanted = list(dict.fromkeys(user_ids))

    valid = await users.tenant_user_ids(session, tenant_id, wanted)
    if len(valid) != len(wanted):
        raise Forbidden("Some users do not belong to this tenant")

    existing = await membership.existing_for_users(session, channel.id, wanted)
    added: list[Membership] = []
    for uid in wanted:
        if uid in existing:
            continue
        member, created = await membership.add(session, channel.id, uid)
        if created:
            added.append(member)
        else:
            existing[uid] = member
    await session.commit()

    if added:
        logger.info("Added %d member(s) to channel %s", len(added), channel.id)
    return await membership.to_reads(session, [*existing.values(), *added])


async def remove_member(
    session: AsyncSession,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    requester_id: uuid.UUID,
    tenant_id: uuid.UUID,
) -> None:
    """Remove ``user_id`` from the channel. Only the creator may do this."""
    channel = await get_row(session, channel_id, tenant_id)
    if channel.created_by != requester_id:
        raise Forbidden("Only the channel creator can remove members")

    member = await membership.get(session, channel.id, user_id)
    if member is None:
        raise NotFound("User is not a member of this channel")
    if user_id == channel.created_by:
        raise Forbidden("Cannot remove the channel creator")

    await membership.remove(session, channel.id, user_id)
    await session.commit()
    logger.info("User %s removed from channel %s by %s", user_id, channel.id, requester_id)
