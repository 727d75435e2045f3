"""Lightweight in-memory TTL cache for query embeddings and retrieval results.

Identical questions asked repeatedly (common in a chat session) should not
each cost an embedding provider round trip or a search. Entries expire after
a TTL and the cache is bounded; the oldest entries are evicted first.
Keys are tuples whose leading elements name a namespace, so a whole
namespace (e.g. one owner's retrieval results) can be dropped at once.
"""

import time
from collections import OrderedDict
from collections.abc import Hashable
from typing import Any

_cache: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()

# Default TTL in seconds
DEFAULT_TTL = 3600
MAX_ENTRIES = 1000


def get(key: Hashable, ttl: float = DEFAULT_TTL) -> Any | None:
    """Return cached value if present and not expired, else None."""
    entry = _cache.get(key)
    if entry is None:
        return None
    stored_at, value = entry
    if time.monotonic() - stored_at > ttl:
        _cache.pop(key, None)
        return None
    return value


def put(key: Hashable, value: Any) -> None:
    """Store a value, evicting the oldest entries beyond MAX_ENTRIES."""
    _cache.pop(key, None)
    _cache[key] = (time.monotonic(), value)
    while len(_cache) > MAX_ENTRIES:
        _cache.popitem(last=False)


def invalidate_prefix(*prefix: Hashable) -> int:
    """Remove every tuple key that starts with ``prefix``; returns the count."""
    n = len(prefix)
    stale = [k for k in _cache if isinstance(k, tuple) and k[:n] == prefix]
    for key in stale:
        del _cache[key]
    return len(stale)


def clear() -> None:
    """Clear all cached entries."""
    _cache.clear()
