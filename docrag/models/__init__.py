"""Import all models so SQLModel.metadata picks them up."""

from docrag.models.chunk import ChunkRecord, ScoredChunk
from docrag.models.conversation import (
    ConversationContext,
    ConversationMessage,
    ConversationSession,
    MessageRead,
    MessageRole,
)
from docrag.models.document import Collection, Document, DocumentSnapshot
from docrag.models.job import (
    IndexBatchPayload,
    IndexBatchResult,
    IndexDocumentPayload,
    IndexDocumentResult,
    Job,
    JobErrorResult,
    JobStatus,
    JobStatusRead,
    JobType,
)

__all__ = [
    "ChunkRecord",
    "Collection",
    "ConversationContext",
    "ConversationMessage",
    "ConversationSession",
    "Document",
    "DocumentSnapshot",
    "IndexBatchPayload",
    "IndexBatchResult",
    "IndexDocumentPayload",
    "IndexDocumentResult",
    "Job",
    "JobErrorResult",
    "JobStatus",
    "JobStatusRead",
    "JobType",
    "MessageRead",
    "MessageRole",
    "ScoredChunk",
]
