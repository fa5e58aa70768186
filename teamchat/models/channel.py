"""Channel model — a conversational space inside one tenant."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from teamchat.models.base import TenantScopedMixin, TimestampMixin, new_uuid
from teamchat.models.membership import MemberRead
from teamchat.models.message import MessagePreview


class ChannelType(StrEnum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    DIRECT = "DIRECT"


def direct_pair_key(user_a: uuid.UUID, user_b: uuid.UUID) -> str:
    """Order-independent key identifying a DM participant pair."""
    low, high = sorted((str(user_a), str(user_b)))
    return f"{low}:{high}"


class Channel(TimestampMixin, TenantScopedMixin, SQLModel, table=True):
    __tablename__ = "channels"
    # NULLs never collide, so only DIRECT channels are constrained.
    __table_args__ = (
        UniqueConstraint("tenant_id", "direct_key", name="uq_channels_tenant_direct_key"),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    type: ChannelType = Field(default=ChannelType.PUBLIC, nullable=False)
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)

    # Set for DIRECT channels only: "<lower user id>:<higher user id>"
    direct_key: str | None = Field(default=None, max_length=80)


# ── Pydantic schemas ─────────────────────────────────────────

class ChannelCreate(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    type: ChannelType = ChannelType.PUBLIC


class ChannelRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    description: str | None = None
    type: ChannelType
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime
    members: list[MemberRead] = Field(default_factory=list)
    message_count: int | None = None


class DirectChannelRead(ChannelRead):
    last_message: MessagePreview | None = None
