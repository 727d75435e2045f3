"""Retriever — query → ranked, owner-scoped documents → generation-ready context.

Flow:
  1. Resolve the filter (explicit document ids win over a collection id)
  2. Serve from the result cache when the same search ran recently
  3. Run both legs concurrently, owner enforced in each predicate:
     vector similarity over chunks, and a text match over document bodies
  4. Fuse the two rankings per document with weighted reciprocal rank fusion
  5. Build sources with query-aware excerpts and a labeled context blob
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

from pydantic import BaseModel, Field

from docrag.core import cache
from docrag.models.chunk import ScoredChunk
from docrag.services.embedding import EmbeddingClient
from docrag.services.excerpt import DEFAULT_EXCERPT_LENGTH, extract_excerpt, tokenize
from docrag.services.stores import DocumentStore, TextMatch
from docrag.services.vector_store import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
MAX_TOP_K = 50
NO_RELEVANT_MATERIAL = "No relevant material found in your library."

_RESULT_NAMESPACE = "retrieval"


@dataclass(frozen=True)
class FusionWeights:
    """Weighted RRF: each leg adds ``weight / (k + rank)`` for a document."""

    k: int = 60
    vector_weight: float = 1.0
    full_text_weight: float = 1.5


class RetrievalFilter(BaseModel):
    """Restrict a search to explicit documents or to one collection.

    Both empty means every document the owner has.
    """

    document_ids: list[uuid.UUID] | None = None
    collection_id: uuid.UUID | None = None


class Source(BaseModel):
    document_id: uuid.UUID
    title: str
    excerpt: str
    # Cosine similarity of the best chunk; None when only the text match found it
    similarity: float | None
    # Fused rank score; sources are ordered by it
    score: float = 0.0
    order: int | None = None


class RetrievalResult(BaseModel):
    sources: list[Source] = Field(default_factory=list)
    context_text: str = NO_RELEVANT_MATERIAL

    @property
    def is_empty(self) -> bool:
        return not self.sources


def invalidate_results(owner_id: uuid.UUID) -> None:
    """Drop every cached retrieval result of ``owner_id``."""
    cache.invalidate_prefix(_RESULT_NAMESPACE, str(owner_id))


class Retriever:
    def __init__(
        self,
        documents: DocumentStore,
        vector_store: VectorStore,
        embedder: EmbeddingClient,
        default_top_k: int = DEFAULT_TOP_K,
        excerpt_length: int = DEFAULT_EXCERPT_LENGTH,
        default_threshold: float | None = None,
        weights: FusionWeights | None = None,
        result_cache_ttl: float = cache.DEFAULT_TTL,
    ) -> None:
        self.documents = documents
        self.vector_store = vector_store
        self.embedder = embedder
        self.default_top_k = default_top_k
        self.excerpt_length = excerpt_length
        self.default_threshold = default_threshold
        self.weights = weights or FusionWeights()
        self.result_cache_ttl = result_cache_ttl

    async def retrieve(
        self,
        query: str,
        owner_id: uuid.UUID,
        filter: RetrievalFilter | None = None,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> RetrievalResult:
        """Return up to ``top_k`` documents, fused from the vector and text legs.

        A cap is always applied (``default_top_k`` when ``top_k`` is None).
        ``threshold`` falls back to ``default_threshold``; when set, a source
        needs a chunk scoring at least that much, and the text leg only
        re-ranks such sources. No hits yield an empty source list and the
        NO_RELEVANT_MATERIAL text.
        """
        if not query or not query.strip():
            logger.warning("Empty query from owner %s", owner_id)
            return RetrievalResult()

        limit = min(max(1, top_k or self.default_top_k), MAX_TOP_K)
        if threshold is None:
            threshold = self.default_threshold
        document_ids = await self._resolve_filter(owner_id, filter)
        if document_ids is not None and not document_ids:
            return RetrievalResult()

        key = (
            _RESULT_NAMESPACE,
            str(owner_id),
            query.strip(),
            tuple(sorted(str(d) for d in document_ids)) if document_ids is not None else None,
            limit,
            threshold,
        )
        cached = cache.get(key, ttl=self.result_cache_ttl)
        if cached is not None:
            logger.debug("Retrieval cache hit for owner %s", owner_id)
            return cached.model_copy(deep=True)

        chunks, matches = await asyncio.gather(
            self._vector_leg(query, owner_id, document_ids, limit, threshold),
            self._full_text_leg(query, owner_id, document_ids, limit),
        )
        sources = self._fuse(query, chunks, matches, limit, threshold is not None)

        if sources:
            result = RetrievalResult(sources=sources, context_text=build_context_text(sources))
        else:
            logger.info("No chunks cleared retrieval for owner %s", owner_id)
            result = RetrievalResult()
        cache.put(key, result)
        return result.model_copy(deep=True)

    async def _resolve_filter(
        self, owner_id: uuid.UUID, filter: RetrievalFilter | None
    ) -> list[uuid.UUID] | None:
        """None means unrestricted (within the owner); a list restricts to it."""
        if filter is None:
            return None
        if filter.document_ids:
            return list(dict.fromkeys(filter.document_ids))
        if filter.collection_id is not None:
            return await self.documents.list_collection_document_ids(
                owner_id, filter.collection_id
            )
        return None

    async def _vector_leg(
        self,
        query: str,
        owner_id: uuid.UUID,
        document_ids: list[uuid.UUID] | None,
        limit: int,
        threshold: float | None,
    ) -> list[ScoredChunk]:
        query_vector = await self.embedder.embed_query(query)
        hits = await self.vector_store.similarity_search(
            owner_id=owner_id,
            query_vector=query_vector,
            limit=limit,
            document_ids=document_ids,
            score_threshold=threshold,
        )
        # Re-assert the scope; the store's predicate is the primary guard
        hits = [
            h for h in hits
            if h.owner_id == owner_id
            and (document_ids is None or h.document_id in document_ids)
            and (threshold is None or h.score >= threshold)
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    async def _full_text_leg(
        self,
        query: str,
        owner_id: uuid.UUID,
        document_ids: list[uuid.UUID] | None,
        limit: int,
    ) -> list[TextMatch]:
        terms = list(dict.fromkeys(tokenize(query)))
        matches = await self.documents.search_text(owner_id, terms, limit, document_ids)
        return [m for m in matches if m.document.owner_id == owner_id]

    def _fuse(
        self,
        query: str,
        chunks: list[ScoredChunk],
        matches: list[TextMatch],
        limit: int,
        vector_required: bool,
    ) -> list[Source]:
        w = self.weights
        fused: dict[uuid.UUID, Source] = {}

        # One entry per document; its best chunk stands for it
        for chunk in chunks:
            if chunk.document_id in fused:
                continue
            rank = len(fused) + 1
            source = self._chunk_source(chunk, query)
            source.score = w.vector_weight / (w.k + rank)
            fused[chunk.document_id] = source

        for rank, match in enumerate(matches, 1):
            bonus = w.full_text_weight / (w.k + rank)
            doc = match.document
            if doc.id in fused:
                fused[doc.id].score += bonus
            elif not vector_required:
                fused[doc.id] = Source(
                    document_id=doc.id,
                    title=doc.title or "(untitled)",
                    excerpt=extract_excerpt(doc.text, query, self.excerpt_length),
                    similarity=None,
                    score=bonus,
                )

        ranked = sorted(fused.values(), key=lambda s: s.score, reverse=True)
        return ranked[:limit]

    def _chunk_source(self, hit: ScoredChunk, query: str) -> Source:
        return Source(
            document_id=hit.document_id,
            title=hit.title or "(untitled)",
            excerpt=extract_excerpt(hit.content, query, self.excerpt_length),
            similarity=hit.score,
            order=hit.order,
        )


def build_context_text(sources: list[Source]) -> str:
    """Concatenate excerpts, each labeled with its 1-based source index."""
    if not sources:
        return NO_RELEVANT_MATERIAL
    return "\n\n".join(
        f"[Source {i}] Title: {s.title}\nExcerpt:\n{s.excerpt}"
        for i, s in enumerate(sources, 1)
    )
