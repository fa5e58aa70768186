"""Membership store — CRUD over channel membership rows.

Uniqueness of ``(channel_id, user_id)`` is enforced by the database. The
existence check in :func:`add` only short-circuits the common case; a lost
insert race surfaces as :class:`Conflict` from :func:`_insert` and is turned
back into a lookup.
"""

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamchat.core.errors import Conflict
from teamchat.models.base import utcnow
from teamchat.models.membership import MemberRead, MemberRole, Membership
from teamchat.services import users

logger = logging.getLogger(__name__)


async def get(
    session: AsyncSession, channel_id: uuid.UUID, user_id: uuid.UUID
) -> Membership | None:
    stmt = select(Membership).where(
        Membership.channel_id == channel_id,
        Membership.user_id == user_id,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def is_member(
    session: AsyncSession, channel_id: uuid.UUID, user_id: uuid.UUID
) -> bool:
    return await get(session, channel_id, user_id) is not None


async def channel_ids_for_user(session: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
    stmt = select(Membership.channel_id).where(Membership.user_id == user_id)
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def existing_for_users(
    session: AsyncSession, channel_id: uuid.UUID, user_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, Membership]:
    wanted = set(user_ids)
    if not wanted:
        return {}
    stmt = select(Membership).where(
        Membership.channel_id == channel_id,
        Membership.user_id.in_(wanted),  # type: ignore[attr-defined]
    )
    result = await session.execute(stmt)
    return {m.user_id: m for m in result.scalars().all()}


async def _insert(
    session: AsyncSession,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    role: MemberRole,
) -> Membership:
    member = Membership(channel_id=channel_id, user_id=user_id, role=role)
    try:
        async with session.begin_nested():
            session.add(member)
            await session.flush()
    except IntegrityError as exc:
        raise Conflict("Membership already exists") from exc
    return member


async def add(
    session: AsyncSession,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    role: MemberRole = MemberRole.MEMBER,
) -> tuple[Membership, bool]:
    """Insert a membership unless one exists.

    Returns ``(membership, created)``. Does not commit.
    """
    existing = await get(session, channel_id, user_id)
    if existing is not None:
        return existing, False

    try:
        return await _insert(session, channel_id, user_id, role), True
    except Conflict:
        existing = await get(session, channel_id, user_id)
        if existing is None:
            raise
        logger.info("Membership insert raced for channel %s user %s", channel_id, user_id)
        return existing, False


async def remove(
    session: AsyncSession, channel_id: uuid.UUID, user_id: uuid.UUID
) -> int:
    """Delete a membership. Zero rows is a no-op, not an error. Does not commit."""
    stmt = delete(Membership).where(
        Membership.channel_id == channel_id,
        Membership.user_id == user_id,
    )
    result = await session.execute(stmt)
    return result.rowcount


async def remove_all(session: AsyncSession, channel_id: uuid.UUID) -> None:
    await session.execute(delete(Membership).where(Membership.channel_id == channel_id))


async def mark_read(
    session: AsyncSession, channel_id: uuid.UUID, user_id: uuid.UUID
) -> int:
    stmt = (
        update(Membership)
        .where(Membership.channel_id == channel_id, Membership.user_id == user_id)
        .values(last_read=utcnow())
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount


async def to_reads(
    session: AsyncSession, memberships: Iterable[Membership]
) -> list[MemberRead]:
    """Attach user profiles to membership rows."""
    rows = list(memberships)
    profiles = await users.briefs(session, (m.user_id for m in rows))
    return [
        MemberRead(
            channel_id=m.channel_id,
            user_id=m.user_id,
            role=m.role,
            last_read=m.last_read,
            user=profiles.get(m.user_id),
        )
        for m in rows
    ]


async def members_by_channel(
    session: AsyncSession, channel_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, list[MemberRead]]:
    """Expanded member lists for several channels in two queries."""
    ids = set(channel_ids)
    if not ids:
        return {}
    stmt = (
        select(Membership)
        .where(Membership.channel_id.in_(ids))  # type: ignore[attr-defined]
        .order_by(Membership.created_at.asc())  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    reads = await to_reads(session, result.scalars().all())

    grouped: dict[uuid.UUID, list[MemberRead]] = {cid: [] for cid in ids}
    for read in reads:
        grouped[read.channel_id].append(read)
    return grouped
