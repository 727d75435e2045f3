"""Indexer — full, idempotent reindex of one document.

Flow:
  1. Load the document (missing or foreign means "empty", nothing touched)
  2. Chunk the text
  3. Delete every stored chunk of the document (reset); no chunks ends here
     with a recorded "empty" outcome, not an error
  4. Embed chunks one batch at a time; write each batch's chunks concurrently
  5. Report chunks written vs. failed
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal

from docrag.core.errors import ReindexInProgressError, StorageWriteError
from docrag.models.chunk import ChunkRecord
from docrag.models.document import DocumentSnapshot
from docrag.services.chunking import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text
from docrag.services.embedding import EmbeddingClient
from docrag.services.retriever import invalidate_results
from docrag.services.stores import DocumentStore
from docrag.services.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class IndexOutcome:
    """Result of one reindex call."""
    document_id: uuid.UUID
    status: Literal["indexed", "empty"]
    chunks_written: int = 0
    chunks_failed: int = 0
    chunks_total: int = 0

    @property
    def is_empty(self) -> bool:
        return self.status == "empty"


class Indexer:
    def __init__(
        self,
        documents: DocumentStore,
        vector_store: VectorStore,
        embedder: EmbeddingClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        self.documents = documents
        self.vector_store = vector_store
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        # Document ids with a reindex in flight (advisory, this process only)
        self._in_progress: set[uuid.UUID] = set()

    @asynccontextmanager
    async def _document_lock(self, document_id: uuid.UUID) -> AsyncIterator[None]:
        if document_id in self._in_progress:
            raise ReindexInProgressError(str(document_id))
        self._in_progress.add(document_id)
        try:
            yield
        finally:
            self._in_progress.discard(document_id)

    def is_reindexing(self, document_id: uuid.UUID) -> bool:
        return document_id in self._in_progress

    async def reindex_document(
        self, document_id: uuid.UUID, owner_id: uuid.UUID
    ) -> IndexOutcome:
        """Replace all stored chunks of a document with freshly embedded ones.

        Raises ReindexInProgressError if the same document is being reindexed,
        and StorageWriteError if the reset delete fails. Per-chunk write errors
        and per-batch embedding errors are counted, not raised.
        """
        async with self._document_lock(document_id):
            doc = await self.documents.get_document(document_id)
            if doc is None or doc.owner_id != owner_id:
                logger.warning("Document %s not found for owner %s; nothing to index", document_id, owner_id)
                return IndexOutcome(document_id=document_id, status="empty")

            chunks = chunk_text(doc.text, chunk_size=self.chunk_size, chunk_overlap=self.chunk_overlap)
            # Stored chunks mirror the current text, which may be none
            await self.vector_store.delete_document(document_id)
            invalidate_results(owner_id)
            if not chunks:
                logger.warning("Document %s has no text; stored chunks cleared", document_id)
                return IndexOutcome(document_id=document_id, status="empty")

            outcome = IndexOutcome(
                document_id=document_id,
                status="indexed",
                chunks_total=len(chunks),
            )
            texts = [c.content for c in chunks]
            n_batches = (len(texts) + self.embedder.batch_size - 1) // self.embedder.batch_size

            for n, offset in enumerate(range(0, len(texts), self.embedder.batch_size), 1):
                batch_texts = texts[offset : offset + self.embedder.batch_size]
                written = await self._index_batch(doc, offset, batch_texts)
                outcome.chunks_written += written
                outcome.chunks_failed += len(batch_texts) - written
                logger.info(
                    "Document %s: batch %d/%d wrote %d/%d chunks",
                    document_id, n, n_batches, written, len(batch_texts),
                )

            logger.info(
                "Indexed document %s: %d/%d chunks written, %d failed",
                document_id, outcome.chunks_written, outcome.chunks_total, outcome.chunks_failed,
            )
            invalidate_results(owner_id)
            return outcome

    async def _index_batch(self, doc: DocumentSnapshot, offset: int, texts: list[str]) -> int:
        """Embed one batch and write its chunks concurrently; returns chunks written."""
        batches = await self.embedder.embed_batches(texts)
        batch = batches[0]
        if not batch.ok:
            logger.error(
                "Document %s: embedding failed for chunks %d-%d: %s",
                doc.id, offset, offset + len(texts) - 1, batch.error,
            )
            return 0

        records = [
            ChunkRecord(
                document_id=doc.id,
                owner_id=doc.owner_id,
                collection_id=doc.collection_id,
                title=doc.title,
                order=offset + i,
                content=text,
                vector=vector,
            )
            for i, (text, vector) in enumerate(zip(texts, batch.vectors or []))
        ]
        results = await asyncio.gather(
            *(self._write_chunk(r) for r in records)
        )
        return sum(results)

    async def _write_chunk(self, record: ChunkRecord) -> bool:
        try:
            await self.vector_store.upsert(record)
        except StorageWriteError:
            logger.exception(
                "Failed to write chunk %d of document %s; skipping",
                record.order, record.document_id,
            )
            return False
        return True
