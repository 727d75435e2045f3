"""Conversation memory: trigger schedule, watermark and fallback summary."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from docrag.core.errors import SessionNotFoundError
from docrag.models.conversation import MessageRole
from docrag.services.memory import fallback_summary


def _completion(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def mock_completion():
    mock = AsyncMock(return_value=_completion("They talked about gardening."))
    with patch("docrag.services.memory.acompletion", mock):
        yield mock


async def _session_with(container, n: int) -> uuid.UUID:
    convo = await container.sessions.create_session(uuid.uuid4(), title="Chat")
    await _append(container, convo.id, 0, n)
    return convo.id


async def _append(container, session_id, start: int, stop: int) -> None:
    for i in range(start, stop):
        role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
        await container.sessions.append_message(session_id, role, f"message {i}")


def _summarized_text(mock: AsyncMock) -> str:
    return mock.call_args.kwargs["messages"][1]["content"]


@pytest.mark.parametrize(
    ("count", "has_summary", "expected"),
    [
        (19, False, False),
        (20, False, True),
        (25, True, False),
        (30, True, True),
        (0, True, False),
    ],
)
async def test_should_summarize_schedule(container, count, has_summary, expected):
    assert container.memory.should_summarize(count, has_summary) is expected


async def test_should_summarize_counts_from_watermark(container):
    assert container.memory.should_summarize(34, True, watermark=25) is False
    assert container.memory.should_summarize(35, True, watermark=25) is True


async def test_no_summary_below_threshold(container, mock_completion):
    session_id = await _session_with(container, 19)

    assert await container.memory.maintain(session_id) is None
    mock_completion.assert_not_called()


async def test_nothing_older_than_window_at_threshold(container, mock_completion):
    session_id = await _session_with(container, 20)

    assert await container.memory.maintain(session_id) is None
    mock_completion.assert_not_called()


async def test_maintain_summarizes_messages_outside_window(container, mock_completion):
    session_id = await _session_with(container, 25)

    summary = await container.memory.maintain(session_id)

    assert summary == "They talked about gardening."
    text = _summarized_text(mock_completion)
    assert "User: message 0" in text
    assert "User: message 4" in text
    assert "message 5" not in text
    convo = await container.sessions.get_session(session_id)
    assert convo.summary == summary
    assert convo.summary_watermark == 25
    assert convo.summary_updated_at is not None


async def test_maintain_is_idempotent_and_follows_interval(container, mock_completion):
    session_id = await _session_with(container, 25)
    await container.memory.maintain(session_id)

    assert await container.memory.maintain(session_id) is None

    await _append(container, session_id, 25, 30)
    assert await container.memory.maintain(session_id) is None

    await _append(container, session_id, 30, 35)
    mock_completion.return_value = _completion("Gardening, then music.")
    assert await container.memory.maintain(session_id) == "Gardening, then music."

    assert mock_completion.await_count == 2
    text = _summarized_text(mock_completion)
    assert "message 14" in text
    assert "message 15" not in text
    convo = await container.sessions.get_session(session_id)
    assert convo.summary_watermark == 35


async def test_provider_failure_uses_fallback(container):
    session_id = await _session_with(container, 25)

    with patch("docrag.services.memory.acompletion", AsyncMock(side_effect=RuntimeError("boom"))):
        summary = await container.memory.maintain(session_id)

    assert summary == "Conversation covered: message 0; message 2; message 4..."


async def test_empty_provider_content_uses_fallback(container):
    session_id = await _session_with(container, 22)

    with patch("docrag.services.memory.acompletion", AsyncMock(return_value=_completion("  "))):
        summary = await container.memory.maintain(session_id)

    assert summary == "Conversation covered: message 0..."


def test_fallback_summary_truncates():
    messages = [SimpleNamespace(role=MessageRole.USER, content="x" * 80) for _ in range(10)]

    summary = fallback_summary(messages)

    assert summary.startswith("Conversation covered: " + "x" * 50 + "; ")
    assert len(summary) == len("Conversation covered: ") + 200 + len("...")


async def test_build_context_returns_summary_and_window(container, mock_completion):
    session_id = await _session_with(container, 25)
    await container.memory.maintain(session_id)

    context = await container.memory.build_context(session_id)

    assert context.summary == "They talked about gardening."
    assert len(context.messages) == 20
    assert context.messages[0].content == "message 5"
    assert context.messages[-1].content == "message 24"


async def test_build_context_short_session(container):
    session_id = await _session_with(container, 3)

    context = await container.memory.build_context(session_id)

    assert context.summary is None
    assert [m.content for m in context.messages] == ["message 0", "message 1", "message 2"]


async def test_unknown_session_raises(container):
    with pytest.raises(SessionNotFoundError):
        await container.memory.maintain(uuid.uuid4())
    with pytest.raises(SessionNotFoundError):
        await container.memory.build_context(uuid.uuid4())
