"""Tests for the XFetch decision function and the entry envelope."""

import math
import random

import pytest

from django_xfetch.exceptions import EnvelopeError
from django_xfetch.stampede import (
    _HEADER_SIZE,
    _HEADER_STRUCT,
    ENVELOPE_MARKER,
    StampedeConfig,
    backend_timeout,
    draw_uniform,
    early_offset,
    should_recompute,
    unwrap_envelope,
    wrap_envelope,
)
from django_xfetch.types import CacheEntry
from tests.fixtures.guard import T0, FixedRandom

# Draws spanning the open interval, including extreme tails
DRAWS = [1e-12, 1e-6, 0.01, 0.25, 0.5, 0.75, 0.999999]


def _recompute_rate(entry: CacheEntry, now: float, beta: float, trials: int = 20_000) -> float:
    rng = random.Random(1234)  # noqa: S311
    hits = sum(should_recompute(entry, now, beta, draw_uniform(rng)) for _ in range(trials))
    return hits / trials


class TestCacheEntry:
    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError, match="recompute_cost"):
            CacheEntry(value="v", expiry=T0, recompute_cost=-0.1)

    @pytest.mark.parametrize("cost", [float("nan"), float("inf")])
    def test_non_finite_cost_rejected(self, cost: float):
        with pytest.raises(ValueError, match="recompute_cost"):
            CacheEntry(value="v", expiry=T0, recompute_cost=cost)

    def test_zero_cost_allowed(self):
        entry = CacheEntry(value="v", expiry=T0)
        assert entry.recompute_cost == 0.0

    def test_remaining(self):
        entry = CacheEntry(value="v", expiry=T0 + 5)
        assert entry.remaining(T0) == 5
        assert entry.remaining(T0 + 7) == -2


class TestDrawUniform:
    def test_returns_draw_in_open_interval(self):
        assert draw_uniform(FixedRandom(0.3)) == 0.3

    def test_zero_is_redrawn(self):
        rng = FixedRandom(0.0, 0.0, 0.25)
        assert draw_uniform(rng) == 0.25
        assert rng.calls == 3

    def test_source_stuck_at_zero_still_returns(self):
        rng = FixedRandom(0.0)
        u = draw_uniform(rng)
        assert 0.0 < u < 1e-300
        assert rng.calls == 16
        assert math.isfinite(math.log(u))

    def test_stuck_source_recomputes_expired_and_spares_far_entries(self):
        u = draw_uniform(FixedRandom(0.0))
        assert should_recompute(CacheEntry(value="v", expiry=T0 - 1, recompute_cost=1.0), T0, 1.0, u)
        assert not should_recompute(CacheEntry(value="v", expiry=T0 + 3600, recompute_cost=1.0), T0, 1.0, u)


class TestEarlyOffset:
    def test_offset_is_non_negative(self):
        for u in DRAWS:
            assert early_offset(2.0, 1.5, u) >= 0

    def test_offset_formula(self):
        assert early_offset(2.0, 1.5, 0.5) == pytest.approx(-2.0 * 1.5 * math.log(0.5))

    def test_zero_beta_or_cost_gives_zero(self):
        assert early_offset(2.0, 0.0, 1e-9) == 0.0
        assert early_offset(0.0, 3.0, 1e-9) == 0.0


class TestShouldRecompute:
    """Deterministic properties of the early-expiration test."""

    def test_zero_beta_is_exact_ttl(self):
        entry = CacheEntry(value="v", expiry=T0, recompute_cost=5.0)
        for u in DRAWS:
            assert should_recompute(entry, T0 - 0.001, 0.0, u) is False
            assert should_recompute(entry, T0, 0.0, u) is False
            assert should_recompute(entry, T0 + 0.001, 0.0, u) is True

    def test_zero_cost_is_exact_ttl_for_any_beta(self):
        entry = CacheEntry(value="v", expiry=T0, recompute_cost=0.0)
        for beta in (0.5, 1.0, 10.0):
            for u in DRAWS:
                assert should_recompute(entry, T0 - 0.001, beta, u) is False
                assert should_recompute(entry, T0 + 0.001, beta, u) is True

    @pytest.mark.parametrize("u", DRAWS)
    @pytest.mark.parametrize("now_offset", [-10.0, -2.0, -0.5, -0.01, 0.0, 0.5])
    def test_fixed_draw_matches_formula(self, u: float, now_offset: float):
        entry = CacheEntry(value="v", expiry=T0, recompute_cost=1.5)
        beta = 2.0
        now = T0 + now_offset
        expected = now - entry.recompute_cost * beta * math.log(u) > entry.expiry
        assert should_recompute(entry, now, beta, u) is expected

    def test_expired_entry_always_recomputes(self):
        entry = CacheEntry(value="v", expiry=T0 - 0.001, recompute_cost=3.0)
        for beta in (0.0, 1.0, 5.0):
            for u in DRAWS:
                assert should_recompute(entry, T0, beta, u) is True

    def test_fresh_entry_far_from_expiry_is_served(self):
        """With 5 minutes remaining and a 1s cost, recomputing needs u < e**-300."""
        entry = CacheEntry(value="v", expiry=T0 + 300, recompute_cost=1.0)
        for u in DRAWS:
            assert should_recompute(entry, T0, 1.0, u) is False


class TestRecomputeProbability:
    """Statistical shape of the recompute probability before expiry."""

    def test_probability_rises_toward_expiry(self):
        entry = CacheEntry(value="v", expiry=T0, recompute_cost=2.0)
        beta = 1.0
        scale = entry.recompute_cost * beta
        lead_times = [3 * scale, 2 * scale, scale, math.log(2) * scale, 0.1 * scale]
        rates = [_recompute_rate(entry, T0 - lead, beta) for lead in lead_times]

        assert rates == sorted(rates)
        assert rates[0] < 0.1
        assert rates[-1] > 0.85

    def test_median_lead_time(self):
        """Half the reads recompute at cost * beta * ln(2) before expiry."""
        entry = CacheEntry(value="v", expiry=T0, recompute_cost=2.0)
        now = T0 - entry.recompute_cost * math.log(2)
        assert _recompute_rate(entry, now, 1.0) == pytest.approx(0.5, abs=0.02)

    def test_at_expiry_almost_always_recomputes(self):
        entry = CacheEntry(value="v", expiry=T0, recompute_cost=2.0)
        assert _recompute_rate(entry, T0, 1.0, trials=2000) == 1.0

    def test_higher_beta_triggers_earlier(self):
        entry = CacheEntry(value="v", expiry=T0 + 5, recompute_cost=2.0)
        low = _recompute_rate(entry, T0, 0.5)
        high = _recompute_rate(entry, T0, 5.0)
        assert high > low


class TestBackendTimeout:
    def test_fresh_entry_gets_remaining_plus_buffer(self):
        entry = CacheEntry(value="v", expiry=T0 + 300)
        assert backend_timeout(entry, T0, 60) == 360

    def test_expired_entry_gets_buffer_only(self):
        entry = CacheEntry(value="v", expiry=T0 - 10)
        assert backend_timeout(entry, T0, 60) == 60

    def test_none_buffer_means_no_expiry(self):
        entry = CacheEntry(value="v", expiry=T0 + 300)
        assert backend_timeout(entry, T0, None) is None


class TestEnvelopeFormat:
    """Tests for the binary envelope format."""

    def test_wrap_creates_envelope_with_marker(self):
        result = wrap_envelope(CacheEntry(value="v", expiry=T0), b"hello")
        assert result.startswith(ENVELOPE_MARKER)

    def test_wrap_has_correct_header_size(self):
        result = wrap_envelope(CacheEntry(value="v", expiry=T0), b"hello")
        assert len(result) == _HEADER_SIZE + 5

    def test_wrap_stores_expiry_and_cost_in_ms(self):
        entry = CacheEntry(value="v", expiry=T0 + 12.5, recompute_cost=0.75)
        result = wrap_envelope(entry, b"v")

        expiry_ms, cost_ms = _HEADER_STRUCT.unpack(result[4:_HEADER_SIZE])
        assert expiry_ms == int((T0 + 12.5) * 1000)
        assert cost_ms == 750

    def test_wrap_clamps_huge_cost(self):
        entry = CacheEntry(value="v", expiry=T0, recompute_cost=10.0**9)
        _expiry_ms, cost_ms = _HEADER_STRUCT.unpack(wrap_envelope(entry, b"")[4:_HEADER_SIZE])
        assert cost_ms == 2**32 - 1

    def test_unwrap_returns_metadata_and_value(self):
        entry = CacheEntry(value="v", expiry=T0 + 1, recompute_cost=2.0)
        expiry, cost, value_bytes = unwrap_envelope(wrap_envelope(entry, b"payload"))
        assert expiry == pytest.approx(T0 + 1, abs=0.001)
        assert cost == 2.0
        assert value_bytes == b"payload"

    def test_unwrap_non_envelope_raises(self):
        with pytest.raises(EnvelopeError, match="marker"):
            unwrap_envelope(b"\x80\x05some_pickle_data")

    def test_unwrap_truncated_envelope_raises(self):
        with pytest.raises(EnvelopeError, match="truncated"):
            unwrap_envelope(ENVELOPE_MARKER + b"\x00")


class TestStampedeConfig:
    def test_default_values(self):
        config = StampedeConfig()
        assert config.beta == 1.0
        assert config.buffer == 60

    def test_custom_values(self):
        config = StampedeConfig(beta=2.0, buffer=None)
        assert config.beta == 2.0
        assert config.buffer is None

    def test_negative_beta_rejected(self):
        with pytest.raises(ValueError, match="beta"):
            StampedeConfig(beta=-1.0)

    def test_negative_buffer_rejected(self):
        with pytest.raises(ValueError, match="buffer"):
            StampedeConfig(buffer=-5)

    @pytest.mark.parametrize("beta", [float("nan"), float("inf")])
    def test_non_finite_beta_rejected(self, beta: float):
        with pytest.raises(ValueError, match="beta"):
            StampedeConfig(beta=beta)

    def test_nan_buffer_rejected(self):
        with pytest.raises(ValueError, match="buffer"):
            StampedeConfig(buffer=float("nan"))
