"""ARQ worker entrypoint."""

from arq.connections import RedisSettings

from docrag.core.config import get_settings
from docrag.workers.tasks import maintain_conversation_memory, run_index_job


def redis_settings() -> RedisSettings:
    """Parse REDIS_URL into ARQ RedisSettings."""
    return RedisSettings.from_dsn(get_settings().redis_url)


async def startup(ctx: dict) -> None:
    """Called when the worker starts: logging, tables, service container."""
    from docrag.core.container import build_container
    from docrag.core.database import async_session_factory, init_db
    from docrag.core.logging import configure_logging
    from docrag.services.scheduler import ArqDispatcher

    settings = get_settings()
    configure_logging(settings.log_level)
    await init_db()
    ctx["container"] = build_container(
        async_session_factory,
        settings=settings,
        dispatcher=ArqDispatcher(ctx["redis"]),
    )


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""
    container = ctx.get("container")
    if container is not None:
        client = getattr(container.vector_store, "client", None)
        if client is not None:
            await client.close()


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [run_index_job, maintain_conversation_memory]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = redis_settings()
    max_jobs = get_settings().job_max_concurrency
    job_timeout = get_settings().job_timeout_seconds


if __name__ == "__main__":
    from arq import run_worker
    run_worker(WorkerSettings)  # type: ignore[arg-type]
