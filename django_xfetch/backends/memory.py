"""In-process entry cache.

Useful for single-process deployments and as a test double. Entries are
kept until overwritten, deleted or cleared; nothing is evicted.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from django_xfetch.exceptions import CacheMissError

if TYPE_CHECKING:
    from django_xfetch.types import CacheEntry


class MemoryEntryCache:
    """Thread-safe dict of ``CacheEntry`` objects."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> CacheEntry:
        with self._lock:
            try:
                return self._entries[key]
            except KeyError:
                raise CacheMissError(key) from None

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # Dict operations never block, so the async methods run inline.
    async def aget(self, key: str) -> CacheEntry:
        return self.get(key)

    async def aset(self, key: str, entry: CacheEntry) -> None:
        self.set(key, entry)
