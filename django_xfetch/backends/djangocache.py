"""Entry cache backed by any Django cache backend.

The entry object is stored as-is and Django's backend serializes it. The
backend timeout is the entry's remaining logical lifetime plus a buffer,
so a logically expired entry stays readable while it is recomputed::

    from django_xfetch.backends import DjangoEntryCache

    entries = DjangoEntryCache("default", buffer=60)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from django.core.cache import caches

from django_xfetch.exceptions import CacheMissError
from django_xfetch.stampede import backend_timeout

if TYPE_CHECKING:
    from django.core.cache.backends.base import BaseCache

    from django_xfetch.types import CacheEntry

# Sentinel to distinguish "not in cache" from a stored None
_MISS = object()


class DjangoEntryCache:
    """Adapt a Django cache (alias or instance) to the entry cache contract.

    Args:
        cache: A ``CACHES`` alias or a ``BaseCache`` instance.
        buffer: Seconds to keep entries past logical expiry. ``None`` stores
            them without a timeout.
        version: Key version passed through to the Django cache.
    """

    def __init__(self, cache: str | BaseCache = "default", buffer: int | None = 60, version: int | None = None) -> None:
        if buffer is not None and buffer < 0:
            msg = f"buffer must be >= 0 or None, got {buffer!r}"
            raise ValueError(msg)
        self._cache = caches[cache] if isinstance(cache, str) else cache
        self._buffer = buffer
        self._version = version

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} cache={self._cache!r} buffer={self._buffer}>"

    @property
    def cache(self) -> BaseCache:
        return self._cache

    def get(self, key: str) -> CacheEntry:
        entry = self._cache.get(key, _MISS, version=self._version)
        if entry is _MISS:
            raise CacheMissError(key)
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        timeout = backend_timeout(entry, time.time(), self._buffer)
        self._cache.set(key, entry, timeout, version=self._version)

    async def aget(self, key: str) -> CacheEntry:
        entry = await self._cache.aget(key, _MISS, version=self._version)
        if entry is _MISS:
            raise CacheMissError(key)
        return entry

    async def aset(self, key: str, entry: CacheEntry) -> None:
        timeout = backend_timeout(entry, time.time(), self._buffer)
        await self._cache.aset(key, entry, timeout, version=self._version)
