"""Index jobs: submit, poll, cancel. All reads scoped to the owner."""

import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, model_validator

from docrag.api.deps import Owner, Services
from docrag.core.errors import InvalidJobTransitionError, JobNotFoundError
from docrag.models.job import JobStatus, JobStatusRead

router = APIRouter(prefix="/index-jobs", tags=["jobs"])


class IndexJobCreate(BaseModel):
    """Exactly one of ``document_id`` / ``document_ids``."""

    document_id: uuid.UUID | None = None
    document_ids: list[uuid.UUID] | None = None

    @model_validator(mode="after")
    def _one_target(self) -> "IndexJobCreate":
        if (self.document_id is None) == (not self.document_ids):
            raise ValueError("Provide either document_id or a non-empty document_ids")
        return self


class IndexJobCreated(BaseModel):
    job_id: uuid.UUID
    status: JobStatus


@router.post("", response_model=IndexJobCreated, status_code=status.HTTP_202_ACCEPTED)
async def submit_index_job(body: IndexJobCreate, owner: Owner, services: Services) -> IndexJobCreated:
    """Create a PENDING job and start indexing in the background."""
    if body.document_id is not None:
        job_id = await services.scheduler.submit(owner.owner_id, body.document_id)
    else:
        job_id = await services.scheduler.submit(owner.owner_id, list(body.document_ids or []))
    return IndexJobCreated(job_id=job_id, status=JobStatus.PENDING)


@router.get("/{job_id}", response_model=JobStatusRead)
async def get_job_status(job_id: uuid.UUID, owner: Owner, services: Services) -> JobStatusRead:
    try:
        return await services.scheduler.get_status(job_id, owner.owner_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found") from exc


@router.post("/{job_id}/cancel", response_model=JobStatusRead)
async def cancel_job(job_id: uuid.UUID, owner: Owner, services: Services) -> JobStatusRead:
    """Advisory cancel; work already dispatched to providers still completes."""
    try:
        return await services.scheduler.cancel(job_id, owner.owner_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found") from exc
    except InvalidJobTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Job already finished",
        ) from exc
