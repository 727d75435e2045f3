"""Retrieval endpoint — ranked sources + context text for a question."""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from docrag.api.deps import Owner, Services
from docrag.core.errors import ProviderError
from docrag.services.retriever import MAX_TOP_K, RetrievalFilter, RetrievalResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/retrieve", tags=["retrieval"])


class RetrieveRequest(BaseModel):
    query: str = Field(min_length=1, max_length=4000)
    document_ids: list[uuid.UUID] | None = None
    collection_id: uuid.UUID | None = None
    top_k: int | None = Field(default=None, ge=1, le=MAX_TOP_K)
    threshold: float | None = Field(default=None, ge=-1.0, le=1.0)


@router.post("", response_model=RetrievalResult)
async def retrieve(body: RetrieveRequest, owner: Owner, services: Services) -> RetrievalResult:
    """Document ids take precedence over a collection id when both are sent."""
    try:
        return await services.retriever.retrieve(
            body.query,
            owner.owner_id,
            filter=RetrievalFilter(document_ids=body.document_ids, collection_id=body.collection_id),
            top_k=body.top_k,
            threshold=body.threshold,
        )
    except ProviderError as exc:
        logger.warning("Retrieval failed for owner %s: %s", owner.owner_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Embedding provider unavailable",
        ) from exc
