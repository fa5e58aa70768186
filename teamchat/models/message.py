"""Message model — one entry in a channel's append-only history."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, Index, Integer, Text
from sqlmodel import Column, Field, SQLModel

from teamchat.models.base import CreatedAtMixin
from teamchat.models.user import UserBrief


# Largest value a BIGINT message id can hold.
MAX_MESSAGE_ID = 2**63 - 1


class MessageType(StrEnum):
    TEXT = "TEXT"
    SYSTEM = "SYSTEM"


class SystemAction(StrEnum):
    JOIN = "JOIN"
    LEAVE = "LEAVE"


class Message(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_channel_created", "channel_id", "created_at"),
    )

    # Autoincrement id doubles as the insertion-order tie-break.
    id: int | None = Field(
        default=None,
        sa_column=Column(
            BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
        ),
    )
    channel_id: uuid.UUID = Field(foreign_key="channels.id", nullable=False)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    content: str = Field(sa_column=Column(Text, nullable=False))
    type: MessageType = Field(default=MessageType.TEXT, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class MessageCreate(SQLModel):
    content: str = Field(min_length=1, max_length=32000)
    type: MessageType = MessageType.TEXT


class MessageRead(SQLModel):
    id: int
    channel_id: uuid.UUID
    user_id: uuid.UUID
    content: str
    type: MessageType
    created_at: datetime
    user: UserBrief | None = None


class MessagePreview(SQLModel):
    """Latest-message summary shown next to a DM in the sidebar."""
    content: str
    created_at: datetime
    user: UserBrief | None = None


class MessagePage(SQLModel):
    """One page of history, newest first. Reverse for display."""
    messages: list[MessageRead]
    has_more: bool
