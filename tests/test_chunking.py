"""Unit tests for the chunking service."""

import pytest

from docrag.services.chunking import chunk_text, normalize_text

from tests.conftest import paragraphs


def test_normalize_collapses_whitespace():
    raw = "  Hello   world  \n\n\n\n  foo  "
    assert normalize_text(raw) == "Hello world\n\nfoo"


def test_normalize_strips_control_chars():
    result = normalize_text("Hello\x00\x01World")
    assert result == "HelloWorld"


def test_normalize_keeps_newlines_and_converts_crlf():
    assert normalize_text("a\r\nb\rc") == "a\nb\nc"


def test_chunk_empty_returns_empty():
    assert chunk_text("") == []
    assert chunk_text("   \n\n\t ") == []


def test_chunk_short_text_single_chunk():
    chunks = chunk_text("Hello, world!", chunk_size=100, chunk_overlap=10)
    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].content == "Hello, world!"
    assert chunks[0].char_count == len("Hello, world!")


def test_chunk_never_exceeds_size():
    text = " ".join(f"Sentence number {i} talks about things." for i in range(200))
    chunks = chunk_text(text, chunk_size=150, chunk_overlap=40)
    assert len(chunks) > 1
    for chunk in chunks:
        assert 0 < chunk.char_count <= 150
        assert chunk.content.strip() == chunk.content


def test_chunk_indices_are_sequential():
    text = "Paragraph one.\n\nParagraph two.\n\nParagraph three.\n\nParagraph four."
    chunks = chunk_text(text, chunk_size=30, chunk_overlap=0)
    assert [c.index for c in chunks] == list(range(len(chunks)))


def test_chunk_packs_paragraphs_up_to_size():
    text = "Alpha beta.\n\nGamma delta.\n\nEpsilon zeta."
    chunks = chunk_text(text, chunk_size=30, chunk_overlap=0)
    assert [c.content for c in chunks] == ["Alpha beta.\n\nGamma delta.", "Epsilon zeta."]


def test_chunk_is_deterministic():
    text = paragraphs(7) + "\n\n" + "Tail sentence. " * 80
    first = chunk_text(text)
    second = chunk_text(text)
    assert [c.content for c in first] == [c.content for c in second]


def test_sentence_split_keeps_punctuation():
    text = "First sentence here. Second sentence here! Third one?"
    chunks = chunk_text(text, chunk_size=25, chunk_overlap=0)
    assert [c.content for c in chunks] == [
        "First sentence here.",
        "Second sentence here!",
        "Third one?",
    ]


def test_chunk_overlap_carries_previous_tail():
    sentences = [f"Sentence number {i} is here." for i in range(20)]
    chunks = chunk_text(" ".join(sentences), chunk_size=100, chunk_overlap=30)
    assert len(chunks) >= 2
    for prev, nxt in zip(chunks, chunks[1:]):
        head = nxt.content.split(" ")[0]
        assert head in prev.content


def test_unbreakable_token_falls_back_to_characters():
    chunks = chunk_text("x" * 250, chunk_size=100, chunk_overlap=0)
    assert [c.char_count for c in chunks] == [100, 100, 50]


def test_one_paragraph_per_chunk_helper():
    assert len(chunk_text(paragraphs(45))) == 45


@pytest.mark.parametrize("size,overlap", [(0, 0), (100, 100), (100, -1)])
def test_invalid_bounds_rejected(size, overlap):
    with pytest.raises(ValueError):
        chunk_text("some text", chunk_size=size, chunk_overlap=overlap)
