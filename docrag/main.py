"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docrag.api.v1 import v1_router
from docrag.core.config import get_settings
from docrag.core.container import build_container
from docrag.core.database import async_session_factory, init_db
from docrag.core.logging import configure_logging
from docrag.services.scheduler import ArqDispatcher, LocalDispatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    configure_logging(settings.log_level)
    # Startup: ensure tables exist (use migrations in production)
    await init_db()

    redis = None
    if settings.use_arq:
        from arq.connections import create_pool

        from docrag.workers.main import redis_settings

        redis = await create_pool(redis_settings())
        dispatcher = ArqDispatcher(redis)
    else:
        dispatcher = LocalDispatcher(max_concurrency=settings.job_max_concurrency)

    app.state.container = build_container(
        async_session_factory, settings=settings, dispatcher=dispatcher
    )
    logger.info("docrag started (dispatcher=%s)", type(dispatcher).__name__)
    yield

    # Shutdown: let in-process jobs finish, close clients
    if isinstance(dispatcher, LocalDispatcher):
        await dispatcher.drain()
    if redis is not None:
        await redis.aclose()


app = FastAPI(
    title="docrag",
    version="0.1.0",
    description="Document indexing, retrieval and conversational memory",
    lifespan=lifespan,
)

app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
