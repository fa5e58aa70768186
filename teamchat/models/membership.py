"""Membership model — grants a user participation in a channel."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from teamchat.models.base import CreatedAtMixin, new_uuid
from teamchat.models.user import UserBrief


class MemberRole(StrEnum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"


class Membership(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "channel_members"
    __table_args__ = (
        UniqueConstraint("channel_id", "user_id", name="uq_channel_members_channel_user"),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    channel_id: uuid.UUID = Field(foreign_key="channels.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    role: MemberRole = Field(default=MemberRole.MEMBER, nullable=False)
    last_read: datetime | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class MemberRead(SQLModel):
    channel_id: uuid.UUID
    user_id: uuid.UUID
    role: MemberRole
    last_read: datetime | None = None
    user: UserBrief | None = None


class AddMembersRequest(SQLModel):
    user_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)
