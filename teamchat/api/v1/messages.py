"""Message endpoints — history paging, posting, read markers, deletion.

Messages posted over HTTP are fanned out to the channel's socket room after
they are stored, exactly like ``sendMessage`` over the socket.
"""

import uuid

from fastapi import APIRouter, Path, Query, status

from teamchat.api.deps import Session, TenantAuth
from teamchat.api.v1.realtime import Gateway
from teamchat.models.message import MAX_MESSAGE_ID, MessageCreate, MessagePage, MessageRead
from teamchat.services import channels, membership, messages

router = APIRouter(prefix="/tenants/{tenant_id}/chat", tags=["messages"])


@router.get("/channels/{channel_id}/messages", response_model=MessagePage)
async def get_messages(
    channel_id: uuid.UUID,
    auth: TenantAuth,
    session: Session,
    limit: int | None = Query(default=None, ge=1),
    before: str | None = None,
) -> MessagePage:
    """Page backwards through history, newest first.

    Pass the id of the oldest message received as ``before`` to fetch the
    next older page. ``has_more`` is false once history is exhausted.
    """
    return await messages.page(session, channel_id, auth.user_id, auth.tenant_id, limit, before)


@router.post(
    "/channels/{channel_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    channel_id: uuid.UUID,
    body: MessageCreate,
    auth: TenantAuth,
    session: Session,
    chat_gateway: Gateway,
) -> MessageRead:
    stored = await messages.append(
        session,
        channel_id,
        auth.user_id,
        body.content,
        body.type,
        tenant_id=auth.tenant_id,
    )
    chat_gateway.publish(stored)
    return stored


@router.patch("/channels/{channel_id}/read")
async def mark_as_read(
    channel_id: uuid.UUID,
    auth: TenantAuth,
    session: Session,
) -> dict:
    channel = await channels.get_row(session, channel_id, auth.tenant_id)
    updated = await membership.mark_read(session, channel.id, auth.user_id)
    return {"count": updated}


@router.delete("/messages/{message_id}")
async def delete_message(
    auth: TenantAuth,
    session: Session,
    message_id: int = Path(ge=1, le=MAX_MESSAGE_ID),
) -> dict:
    """Delete one of the caller's own messages; anything else is a no-op."""
    deleted = await messages.delete_message(session, message_id, auth.user_id)
    return {"count": deleted}
