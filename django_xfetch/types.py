"""Types shared by the guard, the decision function, and the backends.

The backing cache and the recompute callback are capabilities, not base
classes: anything with matching ``get``/``set`` (or ``__call__``) methods
plugs in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable

# Time-to-live returned by a recompute callback: seconds or a timedelta
type TimeoutT = int | float | timedelta


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached value plus the metadata the early-expiration test needs.

    Attributes:
        value: Payload produced by the recompute callback. Never inspected.
        expiry: Logical expiry as a ``time.time()`` timestamp.
        recompute_cost: Seconds the recomputation that produced ``value`` took.
    """

    value: Any
    expiry: float
    recompute_cost: float = 0.0

    def __post_init__(self) -> None:
        if not (self.recompute_cost >= 0 and math.isfinite(self.recompute_cost)):
            msg = f"recompute_cost must be a finite number >= 0, got {self.recompute_cost!r}"
            raise ValueError(msg)

    def remaining(self, now: float) -> float:
        """Seconds left until logical expiry (negative once expired)."""
        return self.expiry - now


@runtime_checkable
class EntryCache(Protocol):
    """Read/write contract for the backing cache.

    ``get`` raises on a miss (``CacheMissError``) or a backend fault; the
    guard treats both the same. ``set`` raises when the write did not take.
    """

    def get(self, key: str) -> CacheEntry: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...


@runtime_checkable
class AsyncEntryCache(Protocol):
    """Async counterpart of :class:`EntryCache`, used by ``afetch``."""

    async def aget(self, key: str) -> CacheEntry: ...

    async def aset(self, key: str, entry: CacheEntry) -> None: ...


class Recomputer(Protocol):
    """Produces a fresh value and its time-to-live; raises on failure."""

    def __call__(self) -> tuple[Any, TimeoutT]: ...


class AsyncRecomputer(Protocol):
    def __call__(self) -> Awaitable[tuple[Any, TimeoutT]]: ...


class RandomSource(Protocol):
    """Uniform draws in [0, 1). ``random.Random`` satisfies this."""

    def random(self) -> float: ...


class Clock(Protocol):
    """Wall-clock seconds since the epoch. ``time.time`` satisfies this."""

    def __call__(self) -> float: ...


class WriteErrorHandler(Protocol):
    """Called when storing a freshly computed entry fails.

    Returning normally swallows the failure; raising surfaces it from
    ``fetch``/``afetch``.
    """

    def __call__(self, key: str, entry: CacheEntry, exc: Exception) -> None: ...
