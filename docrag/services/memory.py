"""Conversation memory — sliding window + running summary.

The most recent ``window_size`` messages are always kept verbatim. Once a
session first reaches ``trigger_threshold`` messages, everything older than
the window is summarized; after that the summary is regenerated every
``update_interval`` messages.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Protocol

from litellm import acompletion

from docrag.core.errors import ProviderError, SessionNotFoundError
from docrag.models.conversation import ConversationContext, MessageRead, MessageRole
from docrag.services.stores import SessionStore

logger = logging.getLogger(__name__)

SUMMARY_TRIGGER_THRESHOLD = 20
SUMMARY_UPDATE_INTERVAL = 10
SUMMARY_WINDOW_SIZE = 20

_SYSTEM_PROMPT = "You are a conversation summarizer. Create concise, informative summaries."
_SUMMARY_PROMPT = """Summarize the following conversation concisely.
Focus on:
1. Main topics discussed
2. Key questions asked by the user
3. Important information provided
4. The current topic

Keep the summary under 200 words. Be specific about what has been covered.

Conversation:
{conversation}"""


class MessageLike(Protocol):
    role: MessageRole | str
    content: str


class SummaryGenerator:
    """Calls the generation provider via LiteLLM."""

    def __init__(self, model: str, api_key: str | None = None, temperature: float = 0.3) -> None:
        self.model = model
        self.api_key = api_key
        self.temperature = temperature

    async def generate(self, conversation: str) -> str:
        kwargs: dict = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": _SUMMARY_PROMPT.format(conversation=conversation)},
            ],
            "temperature": self.temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        try:
            response = await acompletion(**kwargs)
        except Exception as exc:
            raise ProviderError(f"Summary generation failed: {exc}") from exc
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise ProviderError("Summary generation returned no content")
        return content


def fallback_summary(messages: Sequence[MessageLike]) -> str:
    """Cheap local summary: truncated user turns, joined."""
    topics = "; ".join(
        (m.content or "")[:50] for m in messages if m.role == MessageRole.USER
    )
    return f"Conversation covered: {topics[:200]}..."


class ConversationMemoryManager:
    def __init__(
        self,
        sessions: SessionStore,
        generator: SummaryGenerator,
        trigger_threshold: int = SUMMARY_TRIGGER_THRESHOLD,
        update_interval: int = SUMMARY_UPDATE_INTERVAL,
        window_size: int = SUMMARY_WINDOW_SIZE,
    ) -> None:
        self.sessions = sessions
        self.generator = generator
        self.trigger_threshold = trigger_threshold
        self.update_interval = update_interval
        self.window_size = window_size

    def should_summarize(
        self,
        message_count: int,
        has_existing_summary: bool,
        watermark: int | None = None,
    ) -> bool:
        """Decide whether the summary needs (re)generating.

        With a summary and a known ``watermark`` (the count it was written
        at), regenerate once ``update_interval`` messages have arrived since.
        Without a watermark, regenerate on multiples of ``update_interval``.
        """
        if not has_existing_summary:
            return message_count >= self.trigger_threshold
        if watermark is not None:
            return message_count - watermark >= self.update_interval
        return message_count > 0 and message_count % self.update_interval == 0

    async def summarize(self, messages: Sequence[MessageLike]) -> str:
        """Summarize via the generation provider, falling back locally on failure."""
        if not messages:
            return ""
        conversation = "\n\n".join(
            f"{'User' if m.role == MessageRole.USER else 'Assistant'}: {m.content}"
            for m in messages
        )
        try:
            return await self.generator.generate(conversation)
        except ProviderError as exc:
            logger.warning("Summary provider failed, using fallback summary: %s", exc)
            return fallback_summary(messages)

    async def maintain(self, session_id: uuid.UUID) -> str | None:
        """Check-and-update the session summary. Returns the new summary, if written."""
        session = await self.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(str(session_id))

        messages = await self.sessions.list_messages(session_id)
        count = len(messages)
        has_summary = session.summary is not None

        if has_summary and session.summary_watermark == count:
            return None
        if not self.should_summarize(count, has_summary, session.summary_watermark if has_summary else None):
            return None

        older = messages[: max(0, count - self.window_size)]
        if not older:
            return None

        summary = await self.summarize(older)
        await self.sessions.save_summary(session_id, summary, watermark=count)
        logger.info(
            "Summarized %d messages of session %s (watermark %d)", len(older), session_id, count
        )
        return summary

    async def build_context(self, session_id: uuid.UUID) -> ConversationContext:
        """Summary plus the trailing window, for a downstream generation step."""
        session = await self.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(str(session_id))
        messages = await self.sessions.list_messages(session_id)
        window = messages[-self.window_size :] if self.window_size else []
        return ConversationContext(
            session_id=session_id,
            summary=session.summary,
            messages=[
                MessageRead(role=m.role, content=m.content, created_at=m.created_at)
                for m in window
            ],
        )
