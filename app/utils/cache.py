# app/utils/cache.py
"""Small per-process TTL cache used for upstream lookups (forecasts)."""

from __future__ import annotations

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Hashable


class TTLCache:
    """LRU-bounded cache whose entries expire after ``ttl_seconds``.

    ``None`` is never cached, so a failed load is retried on the next call.
    """

    def __init__(self, *, ttl_seconds: float = 300, maxsize: int = 128, clock: Callable[[], float] = time.monotonic) -> None:
        self.enabled = ttl_seconds > 0 and maxsize > 0
        self.ttl = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._store: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable, loader: Callable[[], Any] | None = None) -> Any:
        """Return a live entry, otherwise call ``loader`` (outside the lock) and store its result."""
        if self.enabled:
            now = self._clock()
            with self._lock:
                entry = self._store.get(key)
                if entry is not None:
                    expires_at, value = entry
                    if expires_at > now:
                        self._hits += 1
                        self._store.move_to_end(key)
                        return value
                    del self._store[key]
                self._misses += 1

        if loader is None:
            return None
        value = loader()
        self.set(key, value)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if not self.enabled or value is None:
            return
        with self._lock:
            self._store[key] = (self._clock() + self.ttl, value)
            self._store.move_to_end(key)
            while len(self._store) > self.maxsize:
                self._store.popitem(last=False)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            size = len(self._store)
            hits, misses = self._hits, self._misses
        total = hits + misses
        return {
            "enabled": self.enabled,
            "size": size,
            "maxsize": self.maxsize,
            "ttl_seconds": self.ttl,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / total * 100, 2) if total else 0.0,
        }
