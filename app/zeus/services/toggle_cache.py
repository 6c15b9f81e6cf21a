from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional

from app.zeus.core.metrics import metrics
from app.zeus.services.toggle_store import ToggleRecord

Loader = Callable[[str], Optional[ToggleRecord]]


class _CacheEntry:
    __slots__ = ("record", "expires_at")

    def __init__(self, record: ToggleRecord | None, expires_at: float) -> None:
        self.record = record
        self.expires_at = expires_at


class ToggleCache:
    """Read-through cache of toggle records keyed by feature key.

    Entries expire a fixed ``ttl_seconds`` after they were written, whatever
    the read traffic. Past ``max_entries`` the least recently used entry is
    dropped. Unknown keys are cached as ``None`` so repeated lookups of a
    missing feature do not reach the store.

    Loaders run outside the lock. A load that overlaps an ``invalidate`` of
    the same key still returns its result to its own caller but never
    populates the cache.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 60.0,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        # invalidation counter, plus per-key snapshots kept only while loads are in flight
        self._generation = 0
        self._inflight: Dict[str, int] = {}
        self._invalidated_at: Dict[str, int] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._discarded_loads = 0

    def get(self, feature_key: str, loader: Loader) -> ToggleRecord | None:
        with self._lock:
            entry = self._entries.get(feature_key)
            if entry is not None:
                if self._clock() < entry.expires_at:
                    self._entries.move_to_end(feature_key)
                    self._hits += 1
                    hit = True
                else:
                    del self._entries[feature_key]
                    entry = None
            if entry is None:
                self._misses += 1
                hit = False
                started_at = self._generation
                self._inflight[feature_key] = self._inflight.get(feature_key, 0) + 1
        metrics.record_cache_lookup(hit)
        if entry is not None:
            return entry.record

        stored = False
        try:
            record = loader(feature_key)
            stored = True
        finally:
            with self._lock:
                invalidated = self._invalidated_at.get(feature_key, -1) > started_at
                remaining = self._inflight[feature_key] - 1
                if remaining:
                    self._inflight[feature_key] = remaining
                else:
                    del self._inflight[feature_key]
                    self._invalidated_at.pop(feature_key, None)
                if stored:
                    if invalidated:
                        self._discarded_loads += 1
                    else:
                        self._put(feature_key, record)
        return record

    def _put(self, feature_key: str, record: ToggleRecord | None) -> None:
        self._entries[feature_key] = _CacheEntry(record, self._clock() + self.ttl_seconds)
        self._entries.move_to_end(feature_key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self._evictions += 1

    def invalidate(self, feature_key: str) -> None:
        with self._lock:
            self._entries.pop(feature_key, None)
            self._generation += 1
            if feature_key in self._inflight:
                self._invalidated_at[feature_key] = self._generation

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1
            for feature_key in self._inflight:
                self._invalidated_at[feature_key] = self._generation

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "discarded_loads": self._discarded_loads,
            }
