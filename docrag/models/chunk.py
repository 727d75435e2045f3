"""Chunk models — indexed text segments living in the vector store."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from docrag.models.base import new_uuid, utcnow


class ChunkRecord(BaseModel):
    """A chunk plus its vector, as written to the vector store.

    ``order`` is the zero-based position within the document; it travels
    with the chunk so write completion order never matters.
    """

    id: uuid.UUID = Field(default_factory=new_uuid)
    document_id: uuid.UUID
    owner_id: uuid.UUID
    collection_id: uuid.UUID | None = None
    title: str = ""
    order: int
    content: str
    vector: list[float]
    created_at: datetime = Field(default_factory=utcnow)

    def payload(self) -> dict:
        return {
            "document_id": str(self.document_id),
            "owner_id": str(self.owner_id),
            "collection_id": str(self.collection_id) if self.collection_id else None,
            "title": self.title,
            "order": self.order,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


class ScoredChunk(BaseModel):
    """A chunk returned by similarity search."""

    id: str
    document_id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    order: int
    content: str
    score: float

    @classmethod
    def from_payload(cls, point_id: str, score: float, payload: dict) -> "ScoredChunk":
        return cls(
            id=point_id,
            document_id=uuid.UUID(payload["document_id"]),
            owner_id=uuid.UUID(payload["owner_id"]),
            title=payload.get("title") or "",
            order=payload.get("order", 0),
            content=payload.get("content", ""),
            score=score,
        )
