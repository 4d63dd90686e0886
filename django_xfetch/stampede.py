"""Cache stampede prevention via XFetch probabilistic early expiration.

Implements the XFetch algorithm (Vattani et al., VLDB 2015). Every read
draws ``u`` uniformly from (0, 1) and treats the entry as stale when::

    now - recompute_cost * beta * ln(u) > expiry

``-ln(u)`` is exponentially distributed with mean 1, so the offset has
mean ``recompute_cost * beta``: expensive keys start recomputing earlier,
and concurrent readers draw independently instead of all recomputing at
the expiry instant.

Byte-oriented backends store entries in a small binary envelope holding
the logical expiry and the recompute cost in front of the serialized
value.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django_xfetch.exceptions import EnvelopeError

if TYPE_CHECKING:
    from django_xfetch.types import CacheEntry, RandomSource

DEFAULT_BETA = 1.0

# Envelope marker: 4 bytes that are invalid as the first byte of pickle
# (\x80), JSON (ASCII) and msgpack payloads.
ENVELOPE_MARKER = b"\x00XF\x01"
_HEADER_SIZE = 4 + 8 + 4  # marker + expiry_ms(Q) + cost_ms(I) = 16 bytes
_HEADER_STRUCT = struct.Struct(">QI")
_MAX_COST_MS = 2**32 - 1
# Redraws of 0.0 before giving up on the source and using the smallest positive float
_MAX_REDRAWS = 16


@dataclass(frozen=True, slots=True)
class StampedeConfig:
    """Configuration for stampede prevention."""

    beta: float = DEFAULT_BETA  # higher = earlier recompute, 0 = plain TTL
    buffer: int | None = 60  # extra seconds the backend keeps an entry past logical expiry

    def __post_init__(self) -> None:
        if not (self.beta >= 0 and math.isfinite(self.beta)):
            msg = f"beta must be a finite number >= 0, got {self.beta!r}"
            raise ValueError(msg)
        if self.buffer is not None and not (self.buffer >= 0 and math.isfinite(self.buffer)):
            msg = f"buffer must be a finite number >= 0 or None, got {self.buffer!r}"
            raise ValueError(msg)


def draw_uniform(rng: RandomSource) -> float:
    """Draw from the open interval (0, 1); ``ln(0)`` is undefined."""
    for _ in range(_MAX_REDRAWS):
        u = rng.random()
        if u > 0.0:
            return u
    return math.ulp(0.0)


def early_offset(recompute_cost: float, beta: float, u: float) -> float:
    """Seconds by which this read pulls expiry forward. Always >= 0."""
    if recompute_cost <= 0 or beta <= 0:
        return 0.0
    return -recompute_cost * beta * math.log(u)


def should_recompute(entry: CacheEntry, now: float, beta: float, u: float) -> bool:
    """Decide whether a read at ``now`` with draw ``u`` should recompute."""
    return now + early_offset(entry.recompute_cost, beta, u) > entry.expiry


def backend_timeout(entry: CacheEntry, now: float, buffer: int | None) -> float | None:
    """Hard expiry to give the backend, in seconds from ``now``.

    The backend keeps the entry ``buffer`` seconds past logical expiry so
    that readers still find it (and its recompute cost) while one of them
    recomputes. ``None`` means no hard expiry.
    """
    if buffer is None:
        return None
    return max(0.0, entry.remaining(now)) + buffer


def wrap_envelope(entry: CacheEntry, value_bytes: bytes) -> bytes:
    """Prefix already-serialized value bytes with the entry metadata."""
    expiry_ms = max(0, int(entry.expiry * 1000))
    cost_ms = min(_MAX_COST_MS, int(entry.recompute_cost * 1000))
    return ENVELOPE_MARKER + _HEADER_STRUCT.pack(expiry_ms, cost_ms) + value_bytes


def unwrap_envelope(raw: bytes) -> tuple[float, float, bytes]:
    """Split an envelope into ``(expiry, recompute_cost, value_bytes)``.

    Raises:
        EnvelopeError: If ``raw`` is not an envelope or is truncated.
    """
    if not raw.startswith(ENVELOPE_MARKER):
        msg = "missing envelope marker"
        raise EnvelopeError(msg)
    if len(raw) < _HEADER_SIZE:
        msg = f"truncated envelope ({len(raw)} bytes)"
        raise EnvelopeError(msg)

    expiry_ms, cost_ms = _HEADER_STRUCT.unpack(raw[4:_HEADER_SIZE])
    return expiry_ms / 1000, cost_ms / 1000, raw[_HEADER_SIZE:]
