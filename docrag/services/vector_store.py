"""Vector store — chunk vectors + payloads, owner-scoped similarity search.

Indexer and Retriever only talk to the ``VectorStore`` protocol; the Qdrant
implementation is the production backend (or in-process with ``":memory:"``).
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from docrag.core.errors import DimensionMismatchError, StorageWriteError
from docrag.models.chunk import ChunkRecord, ScoredChunk

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "docrag_chunks"

# Page size when scrolling a document's chunks
_SCROLL_LIMIT = 256


class VectorStore(Protocol):
    dimensions: int

    async def ensure_collection(self) -> None: ...

    async def upsert(self, chunk: ChunkRecord) -> None: ...

    async def delete_document(self, document_id: uuid.UUID) -> None: ...

    async def count_document(self, document_id: uuid.UUID) -> int: ...

    async def list_document_chunks(self, document_id: uuid.UUID) -> list[ScoredChunk]: ...

    async def similarity_search(
        self,
        owner_id: uuid.UUID,
        query_vector: list[float],
        limit: int,
        document_ids: list[uuid.UUID] | None = None,
        score_threshold: float | None = None,
    ) -> list[ScoredChunk]: ...


def create_qdrant_client(url: str) -> AsyncQdrantClient:
    """``":memory:"`` gives an in-process local instance, anything else is a URL."""
    if url == ":memory:":
        return AsyncQdrantClient(location=":memory:")
    return AsyncQdrantClient(url=url, check_compatibility=False)


class QdrantVectorStore:
    """One collection for all owners; tenancy via payload filtering."""

    def __init__(
        self,
        client: AsyncQdrantClient,
        dimensions: int,
        collection_name: str = DEFAULT_COLLECTION_NAME,
    ) -> None:
        self.client = client
        self.dimensions = dimensions
        self.collection_name = collection_name
        self._ready = False

    async def ensure_collection(self) -> None:
        """Create the chunk collection (and payload indexes) if it doesn't exist."""
        if self._ready:
            return
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        if self.collection_name not in existing:
            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.dimensions, distance=Distance.COSINE),
            )
            for key in ("owner_id", "document_id"):
                await self.client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=key,
                    field_schema=PayloadSchemaType.KEYWORD,
                )
            logger.info(
                "Created vector collection %s (dim=%d)", self.collection_name, self.dimensions
            )
        self._ready = True

    async def upsert(self, chunk: ChunkRecord) -> None:
        """Write one chunk. Width is checked before anything is sent."""
        if len(chunk.vector) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(chunk.vector))
        await self.ensure_collection()
        try:
            await self.client.upsert(
                collection_name=self.collection_name,
                points=[
                    PointStruct(
                        id=str(chunk.id),
                        vector=chunk.vector,
                        payload=chunk.payload(),
                    )
                ],
            )
        except Exception as exc:
            raise StorageWriteError(
                f"Failed to write chunk {chunk.order} of document {chunk.document_id}: {exc}"
            ) from exc

    async def delete_document(self, document_id: uuid.UUID) -> None:
        """Delete all vectors belonging to a document."""
        await self.ensure_collection()
        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=_document_filter(document_id)),
            )
        except Exception as exc:
            raise StorageWriteError(
                f"Failed to delete chunks of document {document_id}: {exc}"
            ) from exc

    async def count_document(self, document_id: uuid.UUID) -> int:
        await self.ensure_collection()
        result = await self.client.count(
            collection_name=self.collection_name,
            count_filter=_document_filter(document_id),
            exact=True,
        )
        return result.count

    async def list_document_chunks(self, document_id: uuid.UUID) -> list[ScoredChunk]:
        """All chunks of a document, sorted by ``order``."""
        await self.ensure_collection()
        chunks: list[ScoredChunk] = []
        offset = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=_document_filter(document_id),
                limit=_SCROLL_LIMIT,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            chunks.extend(
                ScoredChunk.from_payload(str(p.id), 1.0, p.payload or {}) for p in points
            )
            if offset is None:
                break
        chunks.sort(key=lambda c: c.order)
        return chunks

    async def similarity_search(
        self,
        owner_id: uuid.UUID,
        query_vector: list[float],
        limit: int,
        document_ids: list[uuid.UUID] | None = None,
        score_threshold: float | None = None,
    ) -> list[ScoredChunk]:
        """Search for similar chunks owned by ``owner_id``, best first.

        The owner condition is always part of the filter; ``document_ids``
        narrows further but can never widen it.
        """
        if len(query_vector) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(query_vector))
        await self.ensure_collection()

        must = [FieldCondition(key="owner_id", match=MatchValue(value=str(owner_id)))]
        if document_ids is not None:
            must.append(
                FieldCondition(
                    key="document_id",
                    match=MatchAny(any=[str(d) for d in document_ids]),
                )
            )

        response = await self.client.query_points(
            collection_name=self.collection_name,
            query=query_vector,
            query_filter=Filter(must=must),
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        )
        return [
            ScoredChunk.from_payload(str(hit.id), hit.score, hit.payload or {})
            for hit in response.points
        ]


def _document_filter(document_id: uuid.UUID) -> Filter:
    return Filter(
        must=[FieldCondition(key="document_id", match=MatchValue(value=str(document_id)))]
    )
