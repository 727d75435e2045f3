"""Embedding service — wraps LiteLLM for provider-agnostic vector generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from litellm import aembedding

from docrag.core import cache
from docrag.core.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_BATCH_SIZE = 20


def sanitize(text: str) -> str:
    """Collapse line breaks into single spaces before embedding.

    Two texts differing only in line-break placement produce identical input.
    """
    return " ".join(part.strip() for part in text.splitlines() if part.strip())


@dataclass
class EmbeddingBatch:
    """One provider call's worth of texts and, if it succeeded, their vectors."""
    offset: int
    texts: list[str]
    vectors: list[list[float]] | None = None
    error: str | None = None
    size: int = field(init=False)

    def __post_init__(self) -> None:
        self.size = len(self.texts)

    @property
    def ok(self) -> bool:
        return self.vectors is not None


class EmbeddingClient:
    """Turns batches of text into vectors, preserving input order."""

    def __init__(
        self,
        model: str = DEFAULT_EMBEDDING_MODEL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        api_key: str | None = None,
        query_cache_ttl: float = cache.DEFAULT_TTL,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.model = model
        self.batch_size = batch_size
        self.api_key = api_key
        self.query_cache_ttl = query_cache_ttl

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed at most ``batch_size`` texts in a single provider call.

        ``vectors[i]`` corresponds to ``texts[i]``. Raises ProviderError.
        """
        if not texts:
            return []
        if len(texts) > self.batch_size:
            raise ValueError(f"Batch of {len(texts)} exceeds batch_size={self.batch_size}")

        kwargs: dict = {"model": self.model, "input": [sanitize(t) for t in texts]}
        if self.api_key:
            kwargs["api_key"] = self.api_key

        try:
            response = await aembedding(**kwargs)
        except Exception as exc:
            raise ProviderError(f"Embedding call failed: {exc}") from exc

        items = list(response.data)
        if len(items) != len(texts):
            raise ProviderError(
                f"Provider returned {len(items)} vectors for {len(texts)} inputs"
            )
        # Providers may return items out of order; each carries its input index
        if all(_field(item, "index") is not None for item in items):
            items.sort(key=lambda item: _field(item, "index"))
        return [list(_field(item, "embedding")) for item in items]

    async def embed_batches(self, texts: list[str]) -> list[EmbeddingBatch]:
        """Embed ``texts`` in slices of ``batch_size``, one slice at a time.

        A failed slice is reported on its EmbeddingBatch and does not stop
        the following slices. No retries happen here.
        """
        batches: list[EmbeddingBatch] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = EmbeddingBatch(offset=offset, texts=texts[offset : offset + self.batch_size])
            try:
                batch.vectors = await self.embed_batch(batch.texts)
            except ProviderError as exc:
                logger.warning(
                    "Embedding batch at offset %d (%d texts) failed: %s",
                    offset, batch.size, exc,
                )
                batch.error = str(exc)
            batches.append(batch)
        return batches

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query string, served from the TTL cache when possible."""
        key = ("emb", self.model, sanitize(text))
        cached = cache.get(key, ttl=self.query_cache_ttl)
        if cached is not None:
            return cached
        vectors = await self.embed_batch([text])
        cache.put(key, vectors[0])
        return vectors[0]


def _field(item: object, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
