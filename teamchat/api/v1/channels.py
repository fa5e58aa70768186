"""Channel endpoints — tenant-scoped listing, lifecycle and membership."""

import uuid

from fastapi import APIRouter, status

from teamchat.api.deps import Session, TenantAuth
from teamchat.core.errors import Forbidden, Invalid
from teamchat.models.channel import ChannelCreate, ChannelRead, ChannelType
from teamchat.models.membership import AddMembersRequest, MemberRead
from teamchat.models.user import is_admin
from teamchat.services import channels

router = APIRouter(prefix="/tenants/{tenant_id}/chat/channels", tags=["channels"])


async def _require_private(session, channel_id: uuid.UUID, tenant_id: uuid.UUID):
    channel = await channels.get_row(session, channel_id, tenant_id)
    if channel.type != ChannelType.PRIVATE:
        raise Invalid("Members can only be managed on private channels")
    return channel


# ── Listing (must be before /{channel_id} routes) ─────────────

@router.get("", response_model=list[ChannelRead])
async def list_channels(auth: TenantAuth, session: Session) -> list[ChannelRead]:
    """Public channels plus private channels the caller created or belongs to."""
    return await channels.list_visible(session, auth.tenant_id, auth.user_id)


@router.get("/available", response_model=list[ChannelRead])
async def list_available_channels(auth: TenantAuth, session: Session) -> list[ChannelRead]:
    """Public channels the caller can still join."""
    return await channels.list_available(session, auth.tenant_id, auth.user_id)


# ── Lifecycle ─────────────────────────────────────────────────

@router.post("", response_model=ChannelRead, status_code=status.HTTP_201_CREATED)
async def create_channel(
    body: ChannelCreate,
    auth: TenantAuth,
    session: Session,
) -> ChannelRead:
    return await channels.create(session, auth.tenant_id, auth.user_id, auth.user_role, body)


@router.get("/{channel_id}", response_model=ChannelRead)
async def get_channel(
    channel_id: uuid.UUID,
    auth: TenantAuth,
    session: Session,
) -> ChannelRead:
    return await channels.get(session, channel_id, auth.tenant_id)


@router.delete("/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_channel(
    channel_id: uuid.UUID,
    auth: TenantAuth,
    session: Session,
) -> None:
    await channels.delete_channel(session, channel_id, auth.tenant_id, auth.user_id, auth.user_role)


# ── Self-service membership ───────────────────────────────────

@router.post("/{channel_id}/join", response_model=MemberRead)
async def join_channel(
    channel_id: uuid.UUID,
    auth: TenantAuth,
    session: Session,
) -> MemberRead:
    return await channels.join(session, channel_id, auth.tenant_id, auth.user_id)


@router.post("/{channel_id}/leave")
async def leave_channel(
    channel_id: uuid.UUID,
    auth: TenantAuth,
    session: Session,
) -> dict:
    await channels.leave(session, channel_id, auth.tenant_id, auth.user_id)
    return {"success": True}


# ── Managed membership (private channels) ─────────────────────

@router.post("/{channel_id}/members", response_model=list[MemberRead])
async def add_channel_members(
    channel_id: uuid.UUID,
    body: AddMembersRequest,
    auth: TenantAuth,
    session: Session,
) -> list[MemberRead]:
    if not is_admin(auth.user_role):
        raise Forbidden("Only admins can add channel members")
    await _require_private(session, channel_id, auth.tenant_id)
    return await channels.add_members(session, channel_id, auth.tenant_id, body.user_ids)


@router.delete("/{channel_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_channel_member(
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    auth: TenantAuth,
    session: Session,
) -> None:
    await _require_private(session, channel_id, auth.tenant_id)
    await channels.remove_member(session, channel_id, user_id, auth.user_id, auth.tenant_id)
