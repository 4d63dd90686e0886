"""StampedeGuard: serve cached values, recomputing early with XFetch.

Usage::

    from django_xfetch.backends import DjangoEntryCache
    from django_xfetch.guard import StampedeGuard

    guard = StampedeGuard(DjangoEntryCache("default"), beta=1.0)

    def build_report():
        return expensive_query(), 300  # value, ttl in seconds

    report = guard.fetch("report:daily", build_report)

The guard keeps no per-key state and takes no locks: concurrent callers
each run the early-expiration test with their own random draw, so a hot
key is usually recomputed by one caller shortly before it expires. Two
callers recomputing the same key is unlikely but possible.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import math
import random
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django_xfetch.exceptions import CacheMissError, NotSupportedError
from django_xfetch.stampede import DEFAULT_BETA, draw_uniform, should_recompute
from django_xfetch.types import CacheEntry

if TYPE_CHECKING:
    from collections.abc import Callable

    from django_xfetch.types import (
        AsyncRecomputer,
        Clock,
        EntryCache,
        RandomSource,
        Recomputer,
        TimeoutT,
        WriteErrorHandler,
    )

logger = logging.getLogger(__name__)


# =============================================================================
# Write error policies
# =============================================================================


def log_write_error(key: str, entry: CacheEntry, exc: Exception) -> None:
    """Default policy: log the failed write and keep serving the fresh value."""
    logger.warning("Failed to store recomputed entry for key %r", key, exc_info=exc)


def ignore_write_error(key: str, entry: CacheEntry, exc: Exception) -> None:
    """Discard write failures silently."""


def raise_write_error(key: str, entry: CacheEntry, exc: Exception) -> None:
    """Surface write failures from ``fetch``/``afetch``."""
    raise exc


def _ttl_seconds(ttl: TimeoutT) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    if isinstance(ttl, bool) or not isinstance(ttl, int | float):
        msg = f"recompute must return a ttl in seconds or a timedelta, got {type(ttl).__name__}"
        raise TypeError(msg)
    return float(ttl)


# =============================================================================
# StampedeGuard
# =============================================================================


class StampedeGuard:
    """Stampede protection for entries in a backing cache.

    Args:
        cache: Backing cache implementing ``get``/``set`` (and ``aget``/``aset``
            for :meth:`afetch`).
        beta: Early-expiration sensitivity. ``0`` gives plain TTL expiry;
            larger values recompute earlier and more often. ``1`` is a good
            default.
        rng: Source of uniform draws. Defaults to a private ``random.Random``.
        clock: Wall-clock function. Defaults to ``time.time``.
        on_write_error: Called as ``handler(key, entry, exc)`` when storing a
            recomputed entry fails. Defaults to :func:`log_write_error`.
        log_ignored_exceptions: Log backend read faults that are turned into
            recomputations.
    """

    def __init__(
        self,
        cache: EntryCache,
        beta: float = DEFAULT_BETA,
        *,
        rng: RandomSource | None = None,
        clock: Clock | None = None,
        on_write_error: WriteErrorHandler | None = None,
        log_ignored_exceptions: bool = False,
    ) -> None:
        if not (beta >= 0 and math.isfinite(beta)):
            msg = f"beta must be a finite number >= 0, got {beta!r}"
            raise ValueError(msg)
        self._cache = cache
        self._beta = float(beta)
        self._rng = rng if rng is not None else random.Random()  # noqa: S311
        self._clock = clock if clock is not None else time.time
        self._on_write_error = on_write_error if on_write_error is not None else log_write_error
        self._log_ignored_exceptions = log_ignored_exceptions

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} cache={self._cache!r} beta={self._beta}>"

    @property
    def cache(self) -> EntryCache:
        return self._cache

    @property
    def beta(self) -> float:
        return self._beta

    # =========================================================================
    # Decision helpers
    # =========================================================================

    def _is_stale(self, entry: CacheEntry) -> bool:
        return should_recompute(entry, self._clock(), self._beta, draw_uniform(self._rng))

    def _read_failed(self, key: str, exc: Exception) -> None:
        if isinstance(exc, CacheMissError):
            logger.debug("Cache miss for key %r", key)
        elif self._log_ignored_exceptions:
            logger.warning("Exception ignored reading key %r", key, exc_info=exc)

    def _make_entry(self, value: Any, ttl: TimeoutT, start: float) -> CacheEntry:
        seconds = _ttl_seconds(ttl)
        cost = max(0.0, self._clock() - start)
        return CacheEntry(value=value, expiry=start + seconds, recompute_cost=cost)

    # =========================================================================
    # Fetch
    # =========================================================================

    def fetch(self, key: str, recompute: Recomputer) -> Any:
        """Return the value for ``key``, recomputing it if needed.

        ``recompute`` is called with no arguments and must return
        ``(value, ttl)``. Exceptions it raises propagate unchanged and
        leave the cache untouched.
        """
        try:
            entry = self._cache.get(key)
        except Exception as e:
            self._read_failed(key, e)
        else:
            if not self._is_stale(entry):
                return entry.value

        start = self._clock()
        value, ttl = recompute()
        entry = self._make_entry(value, ttl, start)
        logger.debug("Recomputed key %r in %.3fs", key, entry.recompute_cost)

        try:
            self._cache.set(key, entry)
        except Exception as e:
            self._on_write_error(key, entry, e)
        return entry.value

    async def afetch(self, key: str, recompute: AsyncRecomputer) -> Any:
        """Async version of :meth:`fetch`; ``recompute`` is awaited.

        Raises:
            NotSupportedError: If the backing cache has no async support.
        """
        aget = getattr(self._cache, "aget", None)
        aset = getattr(self._cache, "aset", None)
        if aget is None or aset is None:
            raise NotSupportedError("afetch", type(self._cache).__name__)

        try:
            entry = await aget(key)
        except NotSupportedError:
            raise
        except Exception as e:
            self._read_failed(key, e)
        else:
            if not self._is_stale(entry):
                return entry.value

        start = self._clock()
        value, ttl = await recompute()
        entry = self._make_entry(value, ttl, start)
        logger.debug("Recomputed key %r in %.3fs", key, entry.recompute_cost)

        try:
            await aset(key, entry)
        except NotSupportedError:
            raise
        except Exception as e:
            self._on_write_error(key, entry, e)
        return entry.value

    # =========================================================================
    # Decorator
    # =========================================================================

    def memoize(
        self,
        ttl: TimeoutT,
        *,
        prefix: str | None = None,
        key_func: Callable[..., str] | None = None,
    ) -> Callable[[Callable], Callable]:
        """Cache a function's results through this guard.

        The key is ``<prefix>:<md5 of the call arguments>``; ``prefix``
        defaults to the function's dotted name. Arguments are hashed by
        ``repr``, so they need a stable one: objects using the default
        ``object.__repr__`` embed their ``id()`` and never share an entry.
        Pass ``key_func`` to build the part after the prefix yourself; it is
        called with the same arguments as the function. Coroutine functions
        are served through :meth:`afetch`.

        Example::

            @guard.memoize(ttl=60, key_func=lambda user: str(user.pk))
            def user_stats(user):
                return compute_stats(user)
        """

        def decorator(func: Callable) -> Callable:
            base = prefix or f"{func.__module__}.{func.__qualname__}"

            def make_key(*args: Any, **kwargs: Any) -> str:
                if key_func is not None:
                    return f"{base}:{key_func(*args, **kwargs)}"
                raw = repr((args, sorted(kwargs.items()))).encode()
                return f"{base}:{hashlib.md5(raw, usedforsecurity=False).hexdigest()}"

            if inspect.iscoroutinefunction(func):

                @functools.wraps(func)
                async def _async_wrapper(*args: Any, **kwargs: Any) -> Any:
                    async def recompute() -> tuple[Any, TimeoutT]:
                        return await func(*args, **kwargs), ttl

                    return await self.afetch(make_key(*args, **kwargs), recompute)

                _async_wrapper.__cache_key__ = make_key  # type: ignore[attr-defined]
                return _async_wrapper

            @functools.wraps(func)
            def _sync_wrapper(*args: Any, **kwargs: Any) -> Any:
                def recompute() -> tuple[Any, TimeoutT]:
                    return func(*args, **kwargs), ttl

                return self.fetch(make_key(*args, **kwargs), recompute)

            _sync_wrapper.__cache_key__ = make_key  # type: ignore[attr-defined]
            return _sync_wrapper

        return decorator
