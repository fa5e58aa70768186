"""Tenant model — top-level isolation boundary.

Tenants are owned by the account service; this table only mirrors the
columns the messaging core reads.
"""

import uuid

from sqlmodel import Field, SQLModel

from teamchat.models.base import TimestampMixin, new_uuid


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)
    is_active: bool = Field(default=True)
