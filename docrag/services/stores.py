"""SQL-backed stores for documents, jobs and conversation sessions.

Each store wraps a session factory and opens a short-lived session per call,
so services holding a store can be shared across background tasks.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from docrag.core.errors import InvalidJobTransitionError, JobNotFoundError, SessionNotFoundError
from docrag.models.conversation import ConversationMessage, ConversationSession, MessageRole
from docrag.models.document import Collection, Document, DocumentSnapshot
from docrag.models.job import Job, JobStatus, JobType

# Candidate rows pulled by the full-text match before ranking
_TEXT_CANDIDATES = 200


@dataclass
class TextMatch:
    document: DocumentSnapshot
    rank: float


# Legal non-terminal edges of the job state machine
_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
}


class DocumentStore:
    """Read-only access to owned documents and collections."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def get_document(self, document_id: uuid.UUID) -> DocumentSnapshot | None:
        async with self._session_factory() as session:
            doc = await session.get(Document, document_id)
            if doc is None:
                return None
            return _snapshot(doc)

    async def search_text(
        self,
        owner_id: uuid.UUID,
        terms: list[str],
        limit: int,
        document_ids: list[uuid.UUID] | None = None,
    ) -> list[TextMatch]:
        """Owned documents whose body contains any of ``terms``, best first.

        Rank is the number of distinct terms present, then total occurrences.
        """
        if not terms or limit <= 0:
            return []
        async with self._session_factory() as session:
            stmt = select(Document).where(
                Document.owner_id == owner_id,
                or_(*(Document.body.icontains(t, autoescape=True) for t in terms)),
            )
            if document_ids is not None:
                stmt = stmt.where(Document.id.in_(document_ids))
            rows = (await session.execute(stmt.limit(_TEXT_CANDIDATES))).scalars().all()

        matches = []
        for doc in rows:
            body = doc.body.lower()
            counts = [body.count(t) for t in terms]
            present = sum(1 for c in counts if c)
            if present:
                matches.append(TextMatch(_snapshot(doc), present + sum(counts) / (1 + sum(counts))))
        matches.sort(key=lambda m: m.rank, reverse=True)
        return matches[:limit]

    async def list_collection_document_ids(
        self, owner_id: uuid.UUID, collection_id: uuid.UUID
    ) -> list[uuid.UUID]:
        """Member document ids of a collection, restricted to ``owner_id``."""
        async with self._session_factory() as session:
            stmt = (
                select(Document.id)
                .join(Collection, Collection.id == Document.collection_id)
                .where(
                    Document.collection_id == collection_id,
                    Document.owner_id == owner_id,
                    Collection.owner_id == owner_id,
                )
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())


class JobStore:
    """CRUD for jobs plus the guarded status transition."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        owner_id: uuid.UUID,
        job_type: JobType,
        payload: BaseModel,
    ) -> Job:
        async with self._session_factory() as session:
            job = Job(
                owner_id=owner_id,
                job_type=job_type,
                status=JobStatus.PENDING,
                progress=0,
                payload=payload.model_dump_json(),
            )
            session.add(job)
            await session.commit()
            await session.refresh(job)
            return job

    async def get(self, job_id: uuid.UUID, owner_id: uuid.UUID | None = None) -> Job | None:
        async with self._session_factory() as session:
            stmt = select(Job).where(Job.id == job_id)
            if owner_id is not None:
                stmt = stmt.where(Job.owner_id == owner_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def transition(
        self,
        job_id: uuid.UUID,
        status: JobStatus | None = None,
        progress: int | None = None,
        result: BaseModel | None = None,
    ) -> Job:
        """Apply a status/progress/result update.

        Raises InvalidJobTransitionError if the job is already terminal or the
        edge is not part of the state machine. Progress never decreases.
        """
        async with self._session_factory() as session:
            stmt = select(Job).where(Job.id == job_id).with_for_update()
            job = (await session.execute(stmt)).scalar_one_or_none()
            if job is None:
                raise JobNotFoundError(str(job_id))

            current = JobStatus(job.status)
            target = status or current
            if current.is_terminal or target not in _TRANSITIONS[current]:
                raise InvalidJobTransitionError(
                    f"Job {job_id}: cannot move from {current} to {target}"
                )

            job.status = target
            if progress is not None:
                job.progress = max(job.progress, min(100, max(0, progress)))
            if result is not None:
                job.result = result.model_dump_json()
            job.touch()
            session.add(job)
            await session.commit()
            await session.refresh(job)
            return job


class SessionStore:
    """Conversation sessions and their ordered message history."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def create_session(self, owner_id: uuid.UUID, title: str = "") -> ConversationSession:
        async with self._session_factory() as session:
            convo = ConversationSession(owner_id=owner_id, title=title)
            session.add(convo)
            await session.commit()
            await session.refresh(convo)
            return convo

    async def get_session(
        self, session_id: uuid.UUID, owner_id: uuid.UUID | None = None
    ) -> ConversationSession | None:
        async with self._session_factory() as session:
            stmt = select(ConversationSession).where(ConversationSession.id == session_id)
            if owner_id is not None:
                stmt = stmt.where(ConversationSession.owner_id == owner_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def append_message(
        self, session_id: uuid.UUID, role: MessageRole, content: str
    ) -> ConversationMessage:
        async with self._session_factory() as session:
            convo = await session.get(ConversationSession, session_id)
            if convo is None:
                raise SessionNotFoundError(str(session_id))

            count_stmt = select(func.count()).select_from(ConversationMessage).where(
                ConversationMessage.session_id == session_id
            )
            seq = (await session.execute(count_stmt)).scalar_one()

            now = convo.touch()
            msg = ConversationMessage(
                session_id=session_id,
                seq=seq,
                role=role,
                content=content,
                created_at=now,
            )
            convo.message_count = seq + 1
            session.add(msg)
            session.add(convo)
            await session.commit()
            await session.refresh(msg)
            return msg

    async def list_messages(self, session_id: uuid.UUID) -> list[ConversationMessage]:
        async with self._session_factory() as session:
            stmt = (
                select(ConversationMessage)
                .where(ConversationMessage.session_id == session_id)
                .order_by(ConversationMessage.seq)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def save_summary(self, session_id: uuid.UUID, summary: str, watermark: int) -> None:
        async with self._session_factory() as session:
            convo = await session.get(ConversationSession, session_id)
            if convo is None:
                raise SessionNotFoundError(str(session_id))
            convo.summary = summary
            convo.summary_updated_at = convo.touch()
            convo.summary_watermark = watermark
            session.add(convo)
            await session.commit()


def _snapshot(doc: Document) -> DocumentSnapshot:
    return DocumentSnapshot(
        id=doc.id,
        owner_id=doc.owner_id,
        collection_id=doc.collection_id,
        title=doc.title,
        text=doc.body,
    )
