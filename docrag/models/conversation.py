"""Conversation session + message models."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel
from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from docrag.models.base import OwnedMixin, TimestampMixin, new_uuid


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationSession(OwnedMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "conversation_sessions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    title: str = Field(default="", max_length=500)
    summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    summary_updated_at: datetime | None = Field(default=None)
    message_count: int = Field(default=0)
    # Value of message_count when ``summary`` was last written
    summary_watermark: int = Field(default=0)


class ConversationMessage(SQLModel, table=True):
    __tablename__ = "conversation_messages"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    session_id: uuid.UUID = Field(
        foreign_key="conversation_sessions.id", nullable=False, index=True,
    )
    # Position within the session; breaks created_at ties
    seq: int = Field(nullable=False)

    role: MessageRole = Field(nullable=False)
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────


class MessageRead(BaseModel):
    role: MessageRole
    content: str
    created_at: datetime


class ConversationContext(BaseModel):
    """Bounded context for a generation step: summary + trailing window."""

    session_id: uuid.UUID
    summary: str | None
    messages: list[MessageRead]
