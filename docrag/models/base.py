"""Column mixins and helpers shared by the docrag tables."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    # Naive UTC; the columns are TIMESTAMP WITHOUT TIME ZONE
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class OwnedMixin(SQLModel):
    """Every row that belongs to someone carries the owner's id; reads filter on it."""

    owner_id: uuid.UUID = Field(nullable=False, index=True)


class TimestampMixin(SQLModel):
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    def touch(self) -> datetime:
        """Bump ``updated_at`` and return the new value."""
        self.updated_at = utcnow()
        return self.updated_at
