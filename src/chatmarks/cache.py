"""Short-lived cache for segmentation results.

Created once per process by whoever wires the segmenter (CLI, MCP server) and
lost on restart. It only absorbs bursts of identical requests; the segmenter
behaves the same with an empty cache or a ``NullSegmentCache``.
"""

from __future__ import annotations

import time
from typing import Callable

from .config import SEGMENT_CACHE_TTL
from .models import TopicSegment


class SegmentCache:
    """Time-indexed map of cache key -> segments, with a fixed TTL."""

    def __init__(self, ttl: float = SEGMENT_CACHE_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, list[TopicSegment]]] = {}

    def get(self, key: str) -> list[TopicSegment] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, segments = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return list(segments)

    def put(self, key: str, segments: list[TopicSegment]):
        self._entries[key] = (self._clock(), list(segments))

    def clear(self):
        self._entries.clear()


class NullSegmentCache(SegmentCache):
    """Cache that never hits."""

    def get(self, key: str) -> list[TopicSegment] | None:
        return None

    def put(self, key: str, segments: list[TopicSegment]):
        pass
