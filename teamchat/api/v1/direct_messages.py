"""Direct-message endpoints."""

import uuid

from fastapi import APIRouter
from pydantic import BaseModel, Field

from teamchat.api.deps import Session, TenantAuth
from teamchat.models.channel import ChannelRead, DirectChannelRead
from teamchat.services import channels, direct

router = APIRouter(prefix="/tenants/{tenant_id}/chat/direct-messages", tags=["direct-messages"])


class DirectMessageRequest(BaseModel):
    recipient_id: uuid.UUID = Field(description="User to open a conversation with")


@router.get("", response_model=list[DirectChannelRead])
async def list_direct_messages(auth: TenantAuth, session: Session) -> list[DirectChannelRead]:
    return await channels.list_direct(session, auth.tenant_id, auth.user_id)


@router.post("", response_model=ChannelRead)
async def create_direct_message(
    body: DirectMessageRequest,
    auth: TenantAuth,
    session: Session,
) -> ChannelRead:
    """Open (or reopen) the DM with ``recipient_id``."""
    return await direct.find_or_create_direct(session, auth.tenant_id, auth.user_id, body.recipient_id)
