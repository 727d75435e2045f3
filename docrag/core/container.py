"""Builds the pipeline's service objects from settings."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from docrag.core.config import Settings, get_settings
from docrag.services.embedding import EmbeddingClient
from docrag.services.indexer import Indexer
from docrag.services.memory import ConversationMemoryManager, SummaryGenerator
from docrag.services.retriever import FusionWeights, Retriever
from docrag.services.scheduler import JobDispatcher, JobScheduler, LocalDispatcher
from docrag.services.stores import DocumentStore, JobStore, SessionStore
from docrag.services.vector_store import QdrantVectorStore, VectorStore, create_qdrant_client


@dataclass
class Container:
    documents: DocumentStore
    jobs: JobStore
    sessions: SessionStore
    vector_store: VectorStore
    embedder: EmbeddingClient
    indexer: Indexer
    scheduler: JobScheduler
    retriever: Retriever
    memory: ConversationMemoryManager


def build_container(
    session_factory: sessionmaker,
    settings: Settings | None = None,
    vector_store: VectorStore | None = None,
    dispatcher: JobDispatcher | None = None,
) -> Container:
    settings = settings or get_settings()

    documents = DocumentStore(session_factory)
    jobs = JobStore(session_factory)
    sessions = SessionStore(session_factory)

    if vector_store is None:
        vector_store = QdrantVectorStore(
            create_qdrant_client(settings.qdrant_url),
            dimensions=settings.embedding_dimensions,
            collection_name=settings.qdrant_collection,
        )

    embedder = EmbeddingClient(
        model=settings.default_embedding_model,
        batch_size=settings.embedding_batch_size,
        api_key=settings.llm_api_key,
        query_cache_ttl=settings.query_cache_ttl,
    )
    indexer = Indexer(
        documents,
        vector_store,
        embedder,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    scheduler = JobScheduler(
        jobs,
        indexer,
        dispatcher or LocalDispatcher(max_concurrency=settings.job_max_concurrency),
        progress_interval=settings.job_progress_interval,
    )
    retriever = Retriever(
        documents,
        vector_store,
        embedder,
        default_top_k=settings.retrieval_top_k,
        excerpt_length=settings.excerpt_length,
        default_threshold=settings.retrieval_threshold,
        weights=FusionWeights(
            k=settings.rrf_k,
            vector_weight=settings.rrf_vector_weight,
            full_text_weight=settings.rrf_full_text_weight,
        ),
        result_cache_ttl=settings.result_cache_ttl,
    )
    memory = ConversationMemoryManager(
        sessions,
        SummaryGenerator(model=settings.default_llm_model, api_key=settings.llm_api_key),
        trigger_threshold=settings.summary_trigger_threshold,
        update_interval=settings.summary_update_interval,
        window_size=settings.summary_window_size,
    )
    return Container(
        documents=documents,
        jobs=jobs,
        sessions=sessions,
        vector_store=vector_store,
        embedder=embedder,
        indexer=indexer,
        scheduler=scheduler,
        retriever=retriever,
        memory=memory,
    )
