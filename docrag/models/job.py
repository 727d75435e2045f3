"""Job model — a trackable, polled unit of background indexing work."""

import uuid
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field as PydanticField, TypeAdapter
from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from docrag.models.base import OwnedMixin, TimestampMixin, new_uuid


class JobType(StrEnum):
    INDEX_DOCUMENT = "index_document"
    INDEX_BATCH = "index_batch"


class JobStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# ── Typed payloads / results (tagged by ``kind``) ────────────


class IndexDocumentPayload(BaseModel):
    kind: Literal["index_document"] = "index_document"
    document_id: uuid.UUID


class IndexBatchPayload(BaseModel):
    kind: Literal["index_batch"] = "index_batch"
    document_ids: list[uuid.UUID]


JobPayload = Annotated[
    IndexDocumentPayload | IndexBatchPayload,
    PydanticField(discriminator="kind"),
]


class IndexDocumentResult(BaseModel):
    kind: Literal["index_document"] = "index_document"
    document_id: uuid.UUID
    outcome: Literal["indexed", "empty"]
    chunks_written: int
    chunks_failed: int
    chunks_total: int
    duration_ms: int


class IndexBatchResult(BaseModel):
    kind: Literal["index_batch"] = "index_batch"
    processed: int
    failed: int
    empty: int = 0
    total: int
    chunks_written: int = 0
    chunks_failed: int = 0
    duration_ms: int
    errors: dict[str, str] = PydanticField(default_factory=dict)


class JobErrorResult(BaseModel):
    kind: Literal["error"] = "error"
    error: str
    processed: int = 0
    failed: int = 0
    total: int = 0


JobResult = Annotated[
    IndexDocumentResult | IndexBatchResult | JobErrorResult,
    PydanticField(discriminator="kind"),
]

_payload_adapter: TypeAdapter = TypeAdapter(JobPayload)
_result_adapter: TypeAdapter = TypeAdapter(JobResult)


def parse_payload(raw: str) -> IndexDocumentPayload | IndexBatchPayload:
    return _payload_adapter.validate_json(raw)


def parse_result(raw: str | None) -> IndexDocumentResult | IndexBatchResult | JobErrorResult | None:
    if not raw:
        return None
    return _result_adapter.validate_json(raw)


# ── Table ────────────────────────────────────────────────────


class Job(OwnedMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "jobs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    job_type: JobType = Field(nullable=False)
    status: JobStatus = Field(default=JobStatus.PENDING)
    progress: int = Field(default=0)

    # JSON of IndexDocumentPayload / IndexBatchPayload
    payload: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))
    # JSON of a JobResult variant, set on terminal transitions
    result: str | None = Field(default=None, sa_column=Column(Text, nullable=True))


# ── Pydantic schemas ─────────────────────────────────────────


class JobStatusRead(BaseModel):
    """What a poller sees: status, progress, result."""

    id: uuid.UUID
    status: JobStatus
    progress: int
    result: JobResult | None = None
