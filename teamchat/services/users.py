"""Read-only access to the externally managed user directory."""

import uuid
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamchat.models.user import User, UserBrief


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User | None:
    return await session.get(User, user_id)


async def get_tenant_user(
    session: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID
) -> User | None:
    """Return the user only if they belong to ``tenant_id``."""
    stmt = select(User).where(User.id == user_id, User.tenant_id == tenant_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def tenant_user_ids(
    session: AsyncSession, tenant_id: uuid.UUID, user_ids: Iterable[uuid.UUID]
) -> set[uuid.UUID]:
    """Subset of ``user_ids`` that belong to ``tenant_id``."""
    wanted = set(user_ids)
    if not wanted:
        return set()
    stmt = select(User.id).where(User.tenant_id == tenant_id, User.id.in_(wanted))  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def briefs(
    session: AsyncSession, user_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, UserBrief]:
    wanted = set(user_ids)
    if not wanted:
        return {}
    stmt = select(User).where(User.id.in_(wanted))  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    return {u.id: UserBrief.model_validate(u) for u in result.scalars().all()}
