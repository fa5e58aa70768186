"""Shared column mixins for chat tables."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    # Naive UTC; the schema stores timestamps without a zone.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class CreatedAtMixin(SQLModel):
    """Insertion time for append-only rows (messages, memberships)."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class TimestampMixin(CreatedAtMixin):
    """Adds ``updated_at``, which drives recency ordering of listings."""

    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    def touch(self, at: datetime | None = None) -> None:
        self.updated_at = at or utcnow()


class TenantScopedMixin(SQLModel):
    """Rows that belong to exactly one tenant."""

    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
