from __future__ import annotations

import time
import typing as t
from collections import OrderedDict


class TTLCache:
    """Small LRU cache with optional per-entry expiry.

    ``ttl_seconds=None`` keeps entries until they are evicted or cleared.
    """

    def __init__(self, max_size: int = 32, ttl_seconds: t.Optional[float] = None) -> None:
        self._store: "OrderedDict[str, tuple[t.Optional[float], t.Any]]" = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl_seconds

    def get(self, key: str) -> t.Optional[t.Any]:
        item = self._store.get(key)
        if item is None:
            return None
        expires_at, value = item
        if expires_at is not None and expires_at < time.monotonic():
            self._store.pop(key, None)
            return None
        self._store.move_to_end(key)
        return value

    def set(self, key: str, value: t.Any, ttl_seconds: t.Optional[float] = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        expires_at = None if ttl is None else time.monotonic() + ttl
        self._store[key] = (expires_at, value)
        self._store.move_to_end(key)
        if len(self._store) > self._max_size:
            # evict LRU
            self._store.popitem(last=False)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
