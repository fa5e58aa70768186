"""Direct-message resolver — exactly one DIRECT channel per user pair."""

import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamchat.core.errors import Conflict, Forbidden, Invalid
from teamchat.models.channel import Channel, ChannelRead, ChannelType, direct_pair_key
from teamchat.models.membership import MemberRole, Membership
from teamchat.services import channels, users

logger = logging.getLogger(__name__)


async def _find(session: AsyncSession, tenant_id: uuid.UUID, key: str) -> Channel | None:
    stmt = select(Channel).where(
        Channel.tenant_id == tenant_id,
        Channel.type == ChannelType.DIRECT,
        Channel.direct_key == key,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _create(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    user_a: uuid.UUID,
    user_b: uuid.UUID,
    key: str,
) -> Channel:
    channel = Channel(
        tenant_id=tenant_id,
        name=f"DM-{user_a}-{user_b}",
        type=ChannelType.DIRECT,
        created_by=user_a,
        direct_key=key,
    )
    try:
        async with session.begin_nested():
            session.add(channel)
            await session.flush()
            session.add_all([
                Membership(channel_id=channel.id, user_id=user_a, role=MemberRole.MEMBER),
                Membership(channel_id=channel.id, user_id=user_b, role=MemberRole.MEMBER),
            ])
            await session.flush()
    except IntegrityError as exc:
        raise Conflict("Direct message already exists") from exc
    return channel


async def find_or_create_direct(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    user_a: uuid.UUID,
    user_b: uuid.UUID,
) -> ChannelRead:
    """Return the DM channel for ``{user_a, user_b}``, creating it if needed.

    The pair key is unique per tenant, so concurrent callers converge on one
    channel: the loser's insert fails and is retried as a lookup.
    """
    if user_a == user_b:
        raise Invalid("Cannot start a direct message with yourself")

    if await users.get_tenant_user(session, tenant_id, user_b) is None:
        raise Forbidden("Cannot create direct message with user from different tenant")
    if await users.get_tenant_user(session, tenant_id, user_a) is None:
        raise Forbidden("Cannot create direct message outside your tenant")

    key = direct_pair_key(user_a, user_b)
    channel = await _find(session, tenant_id, key)
    if channel is None:
        try:
            channel = await _create(session, tenant_id, user_a, user_b, key)
        except Conflict:
            channel = await _find(session, tenant_id, key)
            if channel is None:
                raise
            logger.info("Direct message create raced in tenant %s; using %s", tenant_id, channel.id)
        else:
            await session.commit()
            logger.info("Direct message %s created in tenant %s", channel.id, tenant_id)

    return await channels.get(session, channel.id, tenant_id)
