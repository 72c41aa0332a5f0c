"""
Edge cache store.

Maps a resolved city name (verbatim, no normalization) to the last live
payload and the time it was stored. Expiry is lazy: callers check
`is_fresh` on read and nothing is ever swept. Each edge instance owns its
own store.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .schemas import ResponsePayload

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    timestamp: float
    payload: ResponsePayload


class CacheStore(Protocol):
    ttl_seconds: float

    def get(self, key: str) -> Optional[CacheEntry]: ...

    def put(self, key: str, payload: ResponsePayload) -> None: ...

    def is_fresh(self, entry: CacheEntry) -> bool: ...


class InMemoryCacheStore:
    """
    Process-local store.

    Unbounded by default. With max_entries set, the least recently used key
    is evicted once the bound is exceeded.
    """

    def __init__(self, ttl_seconds: float = 3600.0, max_entries: Optional[int] = None,
                 clock: Clock = time.time):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is not None and self.max_entries is not None:
            self._entries.move_to_end(key)
        return entry

    def put(self, key: str, payload: ResponsePayload) -> None:
        self._entries[key] = CacheEntry(timestamp=self.clock(), payload=payload)
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.timestamp < self.ttl_seconds


class LockedCacheStore:
    """Wraps a store with a mutex for servers that run handlers on threads."""

    def __init__(self, inner: CacheStore):
        self.inner = inner
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self.inner.ttl_seconds

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self.inner.get(key)

    def put(self, key: str, payload: ResponsePayload) -> None:
        with self._lock:
            self.inner.put(key, payload)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.inner.is_fresh(entry)
