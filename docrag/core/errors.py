"""Exception taxonomy for the indexing / retrieval / memory pipeline."""

from __future__ import annotations


class DocragError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(DocragError):
    """An embedding or generation provider call failed."""


class StorageWriteError(DocragError):
    """A chunk write or delete against the vector store failed."""


class DimensionMismatchError(StorageWriteError):
    """A vector's width does not match the collection's configured width."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class ReindexInProgressError(DocragError):
    """Another reindex of the same document holds the advisory lock."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Reindex already in progress for document {document_id}")
        self.document_id = document_id


class JobExecutionError(DocragError):
    """An error escaped the work of a background job."""


class JobNotFoundError(DocragError):
    pass


class InvalidJobTransitionError(DocragError):
    """Attempted to mutate a job that is already COMPLETED or FAILED."""


class SessionNotFoundError(DocragError):
    pass
