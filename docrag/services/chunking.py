"""Text normalization and chunking service."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 600
DEFAULT_CHUNK_OVERLAP = 100


@dataclass
class TextChunk:
    """A chunk of text with its position index."""
    index: int
    content: str
    char_count: int


def normalize_text(text: str) -> str:
    """Normalize unicode, collapse whitespace, strip control characters."""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # Drop control characters other than newline and tab
    text = "".join(ch for ch in text if ch in "\n\t" or unicodedata.category(ch) != "Cc")
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


# Split levels ordered by preference: (pattern, joiner used when re-packing).
# Sentence splitting keeps the terminal punctuation on the sentence.
_LEVELS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\n{2,}"), "\n\n"),
    (re.compile(r"\n"), "\n"),
    (re.compile(r"(?<=[.!?;。！？；])\s+"), " "),
    (re.compile(r" "), " "),
]


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[TextChunk]:
    """Split text into bounded chunks on paragraph / sentence boundaries.

    Pieces are packed greedily up to ``chunk_size`` characters. Each new chunk
    starts with up to ``chunk_overlap`` trailing characters of the previous
    one (cut on a word boundary) when that still fits. No chunk is empty or
    longer than ``chunk_size``. Empty input yields an empty list.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be in [0, chunk_size)")

    text = normalize_text(text)
    if not text:
        return []

    pieces = _split(text, 0, chunk_size, joiner="")

    contents: list[str] = []
    current = ""
    for joiner, piece in pieces:
        if not current:
            current = piece
            continue
        candidate = current + joiner + piece
        if len(candidate) <= chunk_size:
            current = candidate
            continue

        contents.append(current)
        tail = _overlap_tail(current, chunk_overlap)
        if tail and len(tail) + 1 + len(piece) <= chunk_size:
            current = f"{tail} {piece}"
        else:
            current = piece

    if current:
        contents.append(current)

    return [
        TextChunk(index=i, content=c, char_count=len(c))
        for i, c in enumerate(c.strip() for c in contents)
        if c
    ]


def _split(text: str, level: int, chunk_size: int, joiner: str) -> list[tuple[str, str]]:
    """Break ``text`` into (joiner, piece) pairs with every piece <= chunk_size.

    ``joiner`` is how the first piece attaches to whatever precedes it.
    """
    if len(text) <= chunk_size:
        return [(joiner, text)]

    if level >= len(_LEVELS):
        # Character-level fallback
        parts = [text[i:i + chunk_size] for i in range(0, len(text), chunk_size)]
        return [(joiner if i == 0 else "", p) for i, p in enumerate(parts)]

    pattern, level_joiner = _LEVELS[level]
    parts = [p.strip() for p in pattern.split(text)]
    parts = [p for p in parts if p]

    result: list[tuple[str, str]] = []
    for part in parts:
        attach = joiner if not result else level_joiner
        result.extend(_split(part, level + 1, chunk_size, attach))
    return result


def _overlap_tail(content: str, overlap: int) -> str:
    """Last ``overlap`` characters of ``content``, starting on a word boundary."""
    if overlap <= 0:
        return ""
    if len(content) <= overlap:
        return content.strip()
    tail = content[-overlap:]
    if not content[-overlap - 1].isspace():
        cut = re.search(r"\s", tail)
        if cut is None:
            return ""
        tail = tail[cut.end():]
    return tail.strip()
