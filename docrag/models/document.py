"""Document and collection models: the owned text that gets indexed."""

import uuid

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from docrag.models.base import OwnedMixin, TimestampMixin, new_uuid


class Collection(OwnedMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "collections"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)


class Document(OwnedMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "documents"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    collection_id: uuid.UUID | None = Field(
        default=None, foreign_key="collections.id", nullable=True, index=True,
    )

    title: str = Field(default="", max_length=500)
    body: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))


class DocumentSnapshot(SQLModel):
    """Read-only view of a document handed to the indexer."""

    id: uuid.UUID
    owner_id: uuid.UUID
    collection_id: uuid.UUID | None = None
    title: str
    text: str
