"""Backing caches for ``StampedeGuard``.

Each backend implements the entry cache contract (``get``/``set`` plus
``aget``/``aset``) over a different store.
"""

from django_xfetch.backends.djangocache import DjangoEntryCache
from django_xfetch.backends.memory import MemoryEntryCache
from django_xfetch.backends.rediscache import RedisEntryCache

__all__ = [
    "DjangoEntryCache",
    "MemoryEntryCache",
    "RedisEntryCache",
]
