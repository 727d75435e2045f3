"""Conversation memory endpoints."""

import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from docrag.api.deps import Owner, Services
from docrag.models.conversation import ConversationContext, ConversationSession

router = APIRouter(prefix="/sessions", tags=["sessions"])


class MaintainResponse(BaseModel):
    summarized: bool
    summary: str | None
    watermark: int


async def _owned_session(
    session_id: uuid.UUID, owner_id: uuid.UUID, services
) -> ConversationSession:
    convo = await services.sessions.get_session(session_id, owner_id=owner_id)
    if convo is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return convo


@router.post("/{session_id}/memory", response_model=MaintainResponse)
async def maintain_conversation_memory(
    session_id: uuid.UUID, owner: Owner, services: Services
) -> MaintainResponse:
    """Summarize older turns if the session is due; no-op otherwise."""
    await _owned_session(session_id, owner.owner_id, services)
    new_summary = await services.memory.maintain(session_id)
    convo = await _owned_session(session_id, owner.owner_id, services)
    return MaintainResponse(
        summarized=new_summary is not None,
        summary=convo.summary,
        watermark=convo.summary_watermark,
    )


@router.get("/{session_id}/context", response_model=ConversationContext)
async def get_conversation_context(
    session_id: uuid.UUID, owner: Owner, services: Services
) -> ConversationContext:
    await _owned_session(session_id, owner.owner_id, services)
    return await services.memory.build_context(session_id)
