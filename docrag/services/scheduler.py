"""Job scheduler — wraps indexing work in a trackable, polled job.

``submit`` writes the PENDING job record and hands the job id to a
dispatcher; the work itself runs detached from the caller. Anything that
escapes the work is recorded on the job as FAILED, never raised to the
submitter.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from docrag.core.errors import InvalidJobTransitionError, JobExecutionError, JobNotFoundError
from docrag.models.job import (
    IndexBatchPayload,
    IndexBatchResult,
    IndexDocumentPayload,
    IndexDocumentResult,
    JobErrorResult,
    JobStatus,
    JobStatusRead,
    JobType,
    parse_payload,
    parse_result,
)
from docrag.services.indexer import Indexer
from docrag.services.stores import JobStore

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_INTERVAL = 5
CANCELLED = "cancelled"


# ── Dispatchers ──────────────────────────────────────────────


class JobDispatcher(Protocol):
    async def dispatch(self, job_id: uuid.UUID) -> None: ...


class LocalDispatcher:
    """Runs jobs as in-process asyncio tasks, at most ``max_concurrency`` at once.

    Task references are held until completion so they are not garbage
    collected mid-flight.
    """

    def __init__(self, max_concurrency: int = 10) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._runner: Callable[[uuid.UUID], Awaitable[None]] | None = None

    def bind(self, runner: Callable[[uuid.UUID], Awaitable[None]]) -> None:
        self._runner = runner

    async def dispatch(self, job_id: uuid.UUID) -> None:
        if self._runner is None:
            raise RuntimeError("LocalDispatcher has no runner bound")
        task = asyncio.create_task(self._run(job_id), name=f"job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, job_id: uuid.UUID) -> None:
        async with self._semaphore:
            await self._runner(job_id)  # type: ignore[misc]

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatched job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ArqDispatcher:
    """Enqueues ``run_index_job`` on the ARQ (Redis) queue."""

    def __init__(self, redis) -> None:
        self.redis = redis

    async def dispatch(self, job_id: uuid.UUID) -> None:
        await self.redis.enqueue_job("run_index_job", job_id=str(job_id))


# ── Scheduler ────────────────────────────────────────────────


@dataclass
class _BatchCounters:
    processed: int = 0
    failed: int = 0
    empty: int = 0
    chunks_written: int = 0
    chunks_failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)


class JobScheduler:
    def __init__(
        self,
        jobs: JobStore,
        indexer: Indexer,
        dispatcher: JobDispatcher,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ) -> None:
        self.jobs = jobs
        self.indexer = indexer
        self.dispatcher = dispatcher
        self.progress_interval = max(1, progress_interval)
        if isinstance(dispatcher, LocalDispatcher):
            dispatcher.bind(self.run_job)

    async def submit(
        self,
        owner_id: uuid.UUID,
        document_ids: uuid.UUID | list[uuid.UUID],
    ) -> uuid.UUID:
        """Create a PENDING job and hand it off; returns the job id immediately.

        A single id creates an index-document job, a list an index-batch job.
        """
        if isinstance(document_ids, list):
            if not document_ids:
                raise ValueError("No documents to index")
            job = await self.jobs.create(
                owner_id, JobType.INDEX_BATCH, IndexBatchPayload(document_ids=document_ids)
            )
        else:
            job = await self.jobs.create(
                owner_id, JobType.INDEX_DOCUMENT, IndexDocumentPayload(document_id=document_ids)
            )

        try:
            await self.dispatcher.dispatch(job.id)
        except Exception as exc:
            logger.exception("Failed to dispatch job %s", job.id)
            await self._fail(job.id, JobErrorResult(error=f"dispatch failed: {exc}"))
        else:
            logger.info("Submitted %s job %s for owner %s", job.job_type, job.id, owner_id)
        return job.id

    async def get_status(self, job_id: uuid.UUID, owner_id: uuid.UUID) -> JobStatusRead:
        """Pure read of a job's status, progress and result."""
        job = await self.jobs.get(job_id, owner_id=owner_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return JobStatusRead(
            id=job.id,
            status=job.status,
            progress=job.progress,
            result=parse_result(job.result),
        )

    async def cancel(self, job_id: uuid.UUID, owner_id: uuid.UUID) -> JobStatusRead:
        """Advisory cancel: mark FAILED. In-flight provider calls and writes still finish.

        Raises InvalidJobTransitionError if the job already finished.
        """
        job = await self.jobs.get(job_id, owner_id=owner_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        await self.jobs.transition(job_id, JobStatus.FAILED, result=JobErrorResult(error=CANCELLED))
        logger.info("Job %s cancelled by owner %s", job_id, owner_id)
        return await self.get_status(job_id, owner_id)

    async def run_job(self, job_id: uuid.UUID) -> None:
        """Execute a job to a terminal state. Only task cancellation propagates."""
        try:
            await self._execute(job_id)
        except asyncio.CancelledError:
            # Worker timeout or shutdown; the job must not stay PROCESSING
            logger.warning("Job %s task cancelled", job_id)
            await asyncio.shield(self._fail(job_id, JobErrorResult(error=CANCELLED)))
            raise
        except Exception as exc:
            logger.exception("Job %s failed", job_id)
            await self._fail(job_id, JobErrorResult(error=str(exc)[:2000]))

    async def _execute(self, job_id: uuid.UUID) -> None:
        job = await self.jobs.get(job_id)
        if job is None:
            logger.error("Job %s not found", job_id)
            return
        if JobStatus(job.status).is_terminal:
            logger.info("Job %s already %s; skipping", job_id, job.status)
            return

        try:
            await self.jobs.transition(job_id, JobStatus.PROCESSING, progress=0)
        except InvalidJobTransitionError:
            logger.info("Job %s was cancelled before it started", job_id)
            return

        payload = parse_payload(job.payload)
        started = time.monotonic()

        if isinstance(payload, IndexDocumentPayload):
            try:
                outcome = await self.indexer.reindex_document(payload.document_id, job.owner_id)
            except Exception as exc:
                raise JobExecutionError(f"document {payload.document_id}: {exc}") from exc
            result: IndexDocumentResult | IndexBatchResult = IndexDocumentResult(
                document_id=payload.document_id,
                outcome=outcome.status,
                chunks_written=outcome.chunks_written,
                chunks_failed=outcome.chunks_failed,
                chunks_total=outcome.chunks_total,
                duration_ms=_elapsed_ms(started),
            )
        else:
            counters = _BatchCounters()
            try:
                await self._run_batch(job_id, job.owner_id, payload.document_ids, counters)
            except Exception as exc:
                logger.exception("Batch job %s aborted", job_id)
                await self._fail(job_id, JobErrorResult(
                    error=str(exc)[:2000],
                    processed=counters.processed,
                    failed=counters.failed,
                    total=len(payload.document_ids),
                ))
                return
            result = IndexBatchResult(
                processed=counters.processed,
                failed=counters.failed,
                empty=counters.empty,
                total=len(payload.document_ids),
                chunks_written=counters.chunks_written,
                chunks_failed=counters.chunks_failed,
                duration_ms=_elapsed_ms(started),
                errors=counters.errors,
            )

        try:
            await self.jobs.transition(job_id, JobStatus.COMPLETED, progress=100, result=result)
        except InvalidJobTransitionError:
            logger.info("Job %s was cancelled while running; result discarded", job_id)
            return
        logger.info("Job %s completed: %s", job_id, result.model_dump_json())

    async def _run_batch(
        self,
        job_id: uuid.UUID,
        owner_id: uuid.UUID,
        document_ids: list[uuid.UUID],
        counters: _BatchCounters,
    ) -> None:
        """Index documents one by one; a failing document never stops the loop."""
        total = len(document_ids)
        for i, document_id in enumerate(document_ids):
            current = await self.jobs.get(job_id)
            if current is None or JobStatus(current.status).is_terminal:
                logger.info("Job %s no longer running; stopping after %d/%d", job_id, i, total)
                return

            try:
                outcome = await self.indexer.reindex_document(document_id, owner_id)
            except Exception as exc:
                counters.failed += 1
                counters.errors[str(document_id)] = str(exc)[:500]
                logger.exception("Job %s: failed to index document %s", job_id, document_id)
            else:
                counters.processed += 1
                counters.chunks_written += outcome.chunks_written
                counters.chunks_failed += outcome.chunks_failed
                if outcome.is_empty:
                    counters.empty += 1

            done = i + 1
            if done % self.progress_interval == 0 or done == total:
                try:
                    await self.jobs.transition(
                        job_id, JobStatus.PROCESSING, progress=done * 100 // total
                    )
                except InvalidJobTransitionError:
                    logger.info("Job %s stopped during progress update", job_id)
                    return

    async def _fail(self, job_id: uuid.UUID, result: JobErrorResult) -> None:
        try:
            await self.jobs.transition(job_id, JobStatus.FAILED, result=result)
        except InvalidJobTransitionError:
            logger.info("Job %s already terminal; failure not recorded", job_id)
        except Exception:
            logger.exception("Failed to mark job %s as failed", job_id)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
