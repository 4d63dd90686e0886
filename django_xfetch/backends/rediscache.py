"""Entry cache stored directly in Redis or Valkey.

Entries are written as envelope bytes (see ``django_xfetch.stampede``)
with ``SET key value PX <ms>``. Works with any client exposing redis-py's
``get``/``set`` signatures: ``redis.Redis``, ``valkey.Valkey``, or their
cluster and sentinel variants.

Configuration::

    from django_xfetch.backends import RedisEntryCache

    entries = RedisEntryCache.from_url(
        "redis://127.0.0.1:6379/0",
        serializer="django_xfetch.serializers.json.JSONSerializer",
        buffer=60,
    )
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ImproperlyConfigured

from django_xfetch.compat import create_serializer
from django_xfetch.exceptions import CacheMissError, NotSupportedError
from django_xfetch.stampede import backend_timeout, unwrap_envelope, wrap_envelope
from django_xfetch.types import CacheEntry

try:
    import redis
    import redis.asyncio
except ImportError:
    redis = None  # type: ignore[assignment]

try:
    import valkey
    import valkey.asyncio
except ImportError:
    valkey = None  # type: ignore[assignment]


class RedisEntryCache:
    """Adapt a redis-py/valkey-py client to the entry cache contract.

    Args:
        client: Sync client used by ``get``/``set``.
        serializer: Serializer instance, class or dotted path. Defaults to pickle.
        buffer: Seconds to keep entries past logical expiry. ``None`` stores
            them without a TTL.
        key_prefix: Prepended to every key.
        async_client: Optional ``redis.asyncio``/``valkey.asyncio`` client for
            ``aget``/``aset``.
    """

    def __init__(
        self,
        client: Any,
        serializer: str | type | Any | None = None,
        buffer: int | None = 60,
        key_prefix: str = "",
        async_client: Any | None = None,
    ) -> None:
        if buffer is not None and buffer < 0:
            msg = f"buffer must be >= 0 or None, got {buffer!r}"
            raise ValueError(msg)
        self._client = client
        self._async_client = async_client
        self._serializer = create_serializer(serializer)
        self._buffer = buffer
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, library: str = "redis", **kwargs: Any) -> RedisEntryCache:
        """Build a cache with sync and async clients for ``url``.

        Args:
            url: Server URL, e.g. ``redis://localhost:6379/0``.
            library: ``"redis"`` or ``"valkey"``.
            **kwargs: Passed to the constructor.
        """
        if library == "redis":
            lib = redis
        elif library == "valkey":
            lib = valkey
        else:
            msg = f"Unknown client library {library!r}, expected 'redis' or 'valkey'"
            raise ImproperlyConfigured(msg)
        if lib is None:
            msg = f"The {library!r} package is required: pip install django-xfetch[{library}]"
            raise ImproperlyConfigured(msg)

        client_class = lib.Redis if library == "redis" else lib.Valkey
        async_client_class = lib.asyncio.Redis if library == "redis" else lib.asyncio.Valkey
        return cls(
            client_class.from_url(url),
            async_client=async_client_class.from_url(url),
            **kwargs,
        )

    def make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    # =========================================================================
    # Encoding/Decoding
    # =========================================================================

    def encode(self, entry: CacheEntry) -> bytes:
        return wrap_envelope(entry, self._serializer.dumps(entry.value))

    def decode(self, key: str, raw: bytes | None) -> CacheEntry:
        if raw is None:
            raise CacheMissError(key)
        expiry, cost, value_bytes = unwrap_envelope(raw)
        return CacheEntry(value=self._serializer.loads(value_bytes), expiry=expiry, recompute_cost=cost)

    def _px(self, entry: CacheEntry) -> int | None:
        timeout = backend_timeout(entry, time.time(), self._buffer)
        if timeout is None:
            return None
        # PX must be positive
        return max(1, int(timeout * 1000))

    # =========================================================================
    # Entry cache contract
    # =========================================================================

    def get(self, key: str) -> CacheEntry:
        return self.decode(key, self._client.get(self.make_key(key)))

    def set(self, key: str, entry: CacheEntry) -> None:
        self._client.set(self.make_key(key), self.encode(entry), px=self._px(entry))

    async def aget(self, key: str) -> CacheEntry:
        if self._async_client is None:
            raise NotSupportedError("aget", self.__class__.__name__)
        return self.decode(key, await self._async_client.get(self.make_key(key)))

    async def aset(self, key: str, entry: CacheEntry) -> None:
        if self._async_client is None:
            raise NotSupportedError("aset", self.__class__.__name__)
        await self._async_client.set(self.make_key(key), self.encode(entry), px=self._px(entry))
