"""
Simple in‑memory caching layer for contour responses.

Extracting and smoothing every contour of a large TIN is expensive, and
a client typically asks for the same interval repeatedly while panning a
map.  A ``ContourCacheKey`` identifies a request by ``tin_id``,
``interval`` and the output flags; the cached value is the response
payload ready to serialise.

The cache is an ``OrderedDict`` providing least‑recently‑used (LRU)
eviction.  When the number of cached entries exceeds
``MAX_CACHE_ENTRIES`` the oldest entry is dropped.

Usage::

    key = ContourCacheKey(tin_id="abc", interval=1.0, smoothed=True)
    payload = get_contours_from_cache(key)
    if payload is None:
        payload = build_payload(...)
        put_contours_in_cache(key, payload)
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ContourCacheKey:
    """Unique identifier for a cached contour response.

    Attributes:
        tin_id: Identifier of the stored TIN.
        interval: Contour interval.
        smoothed: Whether the spiral‑arc smoothing pass was run.
        include_splits: Whether split diagnostics were included.
    """

    tin_id: str
    interval: float
    smoothed: bool = True
    include_splits: bool = False


# A reentrant lock protects the dictionary; route handlers may run in a
# thread pool.
_cache: "OrderedDict[ContourCacheKey, Dict[str, Any]]" = OrderedDict()
_lock = RLock()
MAX_CACHE_ENTRIES: int = 32


def get_contours_from_cache(key: ContourCacheKey) -> Optional[Dict[str, Any]]:
    """Return the cached payload for ``key``, or ``None``."""
    with _lock:
        payload = _cache.get(key)
        if payload is not None:
            # Mark as recently used
            _cache.move_to_end(key)
        return payload


def put_contours_in_cache(key: ContourCacheKey, payload: Dict[str, Any]) -> None:
    """Store a payload, evicting the least recently used entry when full."""
    with _lock:
        _cache[key] = payload
        _cache.move_to_end(key)
        if len(_cache) > MAX_CACHE_ENTRIES:
            _cache.popitem(last=False)


def invalidate_tin(tin_id: str) -> None:
    """Drop every cached payload computed for ``tin_id``."""
    with _lock:
        for key in [k for k in _cache if k.tin_id == tin_id]:
            del _cache[key]


def clear_cache() -> None:
    with _lock:
        _cache.clear()
