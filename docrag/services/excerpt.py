"""Query-aware excerpt extraction for retrieved chunks."""

from __future__ import annotations

import re

DEFAULT_EXCERPT_LENGTH = 300

# Scan window for locating the densest run of query terms
_WINDOW = 200
_STEP = _WINDOW // 2

_TOKEN_SPLIT = re.compile(r"[\s,，.。!！?？;；:：]+")
_BOUNDARIES = frozenset(" \n。，！？.,!?")


def tokenize(text: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT.split(text.lower()) if t]


def extract_excerpt(content: str, query: str, max_length: int = DEFAULT_EXCERPT_LENGTH) -> str:
    """Cut a ``max_length``-ish excerpt around where the query terms cluster.

    Falls back to the head of the content when no term matches. Cuts land on
    word boundaries and are marked with ``...``.
    """
    if not content:
        return ""
    terms = tokenize(query) if query else []
    if not terms:
        return _head(content, max_length)

    position = _best_position(content.lower(), terms)
    if position is None:
        return _head(content, max_length)
    return _around(content, position, max_length)


def _best_position(content: str, terms: list[str]) -> int | None:
    best: tuple[int, int] | None = None  # (match_count, position)
    last_start = max(0, len(content) - _WINDOW)
    for start in range(0, last_start + 1, _STEP):
        window = content[start : start + _WINDOW]
        hits = sum(1 for t in terms if t in window)
        if hits and (best is None or hits > best[0]):
            best = (hits, start)
    return best[1] if best else None


def _around(content: str, position: int, max_length: int) -> str:
    half = max_length // 2
    start = max(0, position - half)
    end = min(len(content), position + half)
    if end - start < max_length:
        # Spend unused length on the other side
        if start == 0:
            end = min(len(content), max_length)
        elif end == len(content):
            start = max(0, len(content) - max_length)

    start = _boundary(content, start, forward=False)
    end = _boundary(content, end, forward=True)

    excerpt = content[start:end].strip()
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(content):
        excerpt = excerpt + "..."
    return excerpt


def _head(content: str, max_length: int) -> str:
    if len(content) <= max_length:
        return content
    end = _boundary(content, max_length, forward=False)
    if end <= 0:
        end = max_length
    return content[:end].rstrip() + "..."


def _boundary(content: str, position: int, forward: bool) -> int:
    """Nearest word boundary from ``position`` in the given direction."""
    if position <= 0 or position >= len(content):
        return max(0, min(position, len(content)))
    if forward:
        for i in range(position, len(content)):
            if content[i] in _BOUNDARIES:
                return i
        return len(content)
    for i in range(position, 0, -1):
        if content[i] in _BOUNDARIES:
            return i + 1
    return 0
