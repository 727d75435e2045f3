"""Shared test fixtures — async SQLite DB, in-process Qdrant, fake embeddings."""

import os

# Must be set before docrag.core.config is first imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("QDRANT_URL", ":memory:")

import uuid
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import create_async_engine

from docrag.core import cache
from docrag.core.config import Settings
from docrag.core.container import Container, build_container
from docrag.core.database import create_session_factory, init_db
from docrag.core.errors import StorageWriteError
from docrag.main import app
from docrag.models.document import Collection, Document
from docrag.services.scheduler import LocalDispatcher
from docrag.services.vector_store import QdrantVectorStore

# Keyword vocabulary for the fake embedding model: one dimension per word,
# plus a constant last dimension so no vector is all zeros.
VOCAB = ["python", "rust", "garden", "tomato", "ocean", "whale", "music", "guitar"]
DIMS = len(VOCAB) + 1


def fake_vector(text: str) -> list[float]:
    words = text.lower().split()
    vec = [float(sum(1 for w in words if w.strip(".,!?;:") == term)) for term in VOCAB]
    vec.append(0.05)
    return vec


def fake_embedding_response(input: list[str]):
    return SimpleNamespace(
        data=[{"embedding": fake_vector(t), "index": i, "object": "embedding"} for i, t in enumerate(input)]
    )


def _fake_aembedding(model: str, input: list[str], **kwargs):
    return fake_embedding_response(input)


class FlakyVectorStore(QdrantVectorStore):
    """Real in-process Qdrant store that can be told to fail specific writes."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail_orders: set[int] = set()
        self.fail_delete_for: set[uuid.UUID] = set()
        self.upserted_orders: list[int] = []

    async def upsert(self, chunk) -> None:
        if chunk.order in self.fail_orders:
            raise StorageWriteError(f"simulated write failure for chunk {chunk.order}")
        await super().upsert(chunk)
        self.upserted_orders.append(chunk.order)

    async def delete_document(self, document_id: uuid.UUID) -> None:
        if document_id in self.fail_delete_for:
            raise StorageWriteError(f"simulated delete failure for {document_id}")
        await super().delete_document(document_id)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        embedding_dimensions=DIMS,
        embedding_batch_size=20,
        chunk_size=600,
        chunk_overlap=100,
        job_progress_interval=5,
        retrieval_top_k=5,
    )


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def vector_store() -> AsyncGenerator[FlakyVectorStore, None]:
    client = AsyncQdrantClient(location=":memory:")
    store = FlakyVectorStore(client, dimensions=DIMS, collection_name="test_chunks")
    await store.ensure_collection()
    yield store
    await client.close()


@pytest.fixture
def mock_embedding():
    """Patch LiteLLM's aembedding with the keyword-vector fake."""
    cache.clear()
    mock = AsyncMock(side_effect=_fake_aembedding)
    with patch("docrag.services.embedding.aembedding", mock):
        yield mock
    cache.clear()


@pytest.fixture
async def container(session_factory, settings, vector_store, mock_embedding) -> AsyncGenerator[Container, None]:
    dispatcher = LocalDispatcher(max_concurrency=4)
    c = build_container(
        session_factory,
        settings=settings,
        vector_store=vector_store,
        dispatcher=dispatcher,
    )
    yield c
    await dispatcher.drain()


@pytest.fixture
async def client(container) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client wired to the test container."""
    app.state.container = container
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.container


@pytest.fixture
def make_document(session_factory):
    """Insert a document (and optionally a collection) directly into the DB."""

    async def _make(
        owner_id: uuid.UUID,
        body: str,
        title: str = "Doc",
        collection_id: uuid.UUID | None = None,
    ) -> uuid.UUID:
        async with session_factory() as session:
            doc = Document(owner_id=owner_id, body=body, title=title, collection_id=collection_id)
            session.add(doc)
            await session.commit()
            return doc.id

    return _make


@pytest.fixture
def make_collection(session_factory):
    async def _make(owner_id: uuid.UUID, name: str = "Shelf") -> uuid.UUID:
        async with session_factory() as session:
            col = Collection(owner_id=owner_id, name=name)
            session.add(col)
            await session.commit()
            return col.id

    return _make


def paragraphs(n: int, topic: str = "garden") -> str:
    """Text that chunks into exactly ``n`` chunks at chunk_size=600."""
    return "\n\n".join(
        f"Paragraph {i} about {topic}. " + ("lorem ipsum dolor sit amet " * 20).strip()
        for i in range(n)
    )
