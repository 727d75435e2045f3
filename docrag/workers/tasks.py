"""ARQ task functions, thin adapters from queue messages to services."""

from __future__ import annotations

import logging
import uuid

from docrag.core.container import Container
from docrag.core.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


async def run_index_job(ctx: dict, job_id: str) -> dict:
    """ARQ task: run an index job to a terminal state.

    Args:
        ctx: ARQ worker context; ``ctx["container"]`` is set at startup.
        job_id: UUID of a PENDING job created by JobScheduler.submit.

    Returns:
        dict with the job's final status and progress.
    """
    container: Container = ctx["container"]
    job_uuid = uuid.UUID(job_id)
    await container.scheduler.run_job(job_uuid)

    job = await container.jobs.get(job_uuid)
    if job is None:
        return {"error": "job_not_found"}
    return {"status": str(job.status), "progress": job.progress}


async def maintain_conversation_memory(ctx: dict, session_id: str) -> dict:
    """ARQ task: refresh a session's running summary if it is due."""
    container: Container = ctx["container"]
    try:
        summary = await container.memory.maintain(uuid.UUID(session_id))
    except SessionNotFoundError:
        logger.error("Session %s not found", session_id)
        return {"error": "session_not_found"}
    return {"summarized": summary is not None}
