"""In-memory key/value caches used by the scanner and mitigation services.

Each cache holds a single value type so callers never cast on read.  Two
flavours exist:

* ``TTLCache`` expires entries after a default (or per-entry) time-to-live.
* ``SnapshotCache`` never expires; it is repopulated wholesale by swapping in a
  new mapping so readers observe either the old snapshot or the new one, never
  a partially flushed map.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Thread-safe TTL cache for a single value type."""

    def __init__(self, ttl_s: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = float(ttl_s)
        self._clock = clock
        self._store: Dict[str, Tuple[V, float]] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            cached = self._store.get(key)
            if cached is None:
                return None
            value, expires_at = cached
            if self._clock() >= expires_at:
                self._store.pop(key, None)
                return None
            return value

    def set(self, key: str, value: V, ttl_s: float | None = None) -> None:
        ttl = self._ttl if ttl_s is None else float(ttl_s)
        with self._lock:
            self._store[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for _, expires_at in self._store.values() if expires_at > now)


class SnapshotCache(Generic[V]):
    """Never-expiring cache replaced atomically on reload."""

    def __init__(self, items: Mapping[str, V] | None = None) -> None:
        self._items: Dict[str, V] = dict(items or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        return self._items.get(key)

    def values(self) -> List[V]:
        return list(self._items.values())

    def replace(self, items: Iterable[Tuple[str, V]]) -> int:
        """Swap in a freshly built snapshot and return its size."""

        snapshot = dict(items)
        with self._lock:
            self._items = snapshot
        return len(snapshot)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["SnapshotCache", "TTLCache"]
