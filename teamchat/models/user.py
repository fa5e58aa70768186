"""User model — belongs to a tenant."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from teamchat.models.base import TenantScopedMixin, TimestampMixin, new_uuid

FALLBACK_DISPLAY_NAME = "Someone"


class UserRole(StrEnum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


def is_admin(role: str) -> bool:
    """Tenant admins and platform super admins share channel management rights."""
    return role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)


class User(TimestampMixin, TenantScopedMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=320, nullable=False, index=True)
    display_name: str = Field(default="", max_length=255)
    role: UserRole = Field(default=UserRole.MEMBER)
    is_active: bool = Field(default=True)

    @property
    def name_for_notices(self) -> str:
        return self.display_name.strip() or FALLBACK_DISPLAY_NAME


# ── Pydantic schemas ─────────────────────────────────────────

class UserBrief(SQLModel):
    """Author / member profile embedded in channel and message payloads."""
    id: uuid.UUID
    email: str
    display_name: str
