"""Tests for the expected-move hit rate and time-to-first-breach replays."""

import math

import pytest

from marketkpi.backtest.expected_move import (
    compute_hit_rate,
    compute_time_to_first_breach,
    merge_daily_iv_and_spot,
)
from marketkpi.candles.models import MS_PER_DAY

HOUR_MS = 3_600_000
# IV (percent points) that makes the 1-day EM exactly 1% of spot
IV_ONE_PCT_DAILY = math.sqrt(365)


def _iv_points(days, value=50.0):
    return [{"timestamp": d * MS_PER_DAY, "percentValue": value} for d in days]


def _spot_candles(closes, offset_hours=12):
    return [
        {"timestamp": d * MS_PER_DAY + offset_hours * HOUR_MS, "close": c}
        for d, c in enumerate(closes)
    ]


class TestMerge:
    def test_outer_join_by_utc_day(self):
        iv = _iv_points([0, 1])
        spot = [
            {"timestamp": 1 * MS_PER_DAY + HOUR_MS, "close": 101.0},
            {"timestamp": 2 * MS_PER_DAY, "close": 102.0},
        ]
        merged = merge_daily_iv_and_spot(iv, spot)
        assert list(merged.index) == [0, 1, 2]
        assert math.isnan(merged.loc[0, "spot"])
        assert merged.loc[1, "spot"] == 101.0
        assert math.isnan(merged.loc[2, "iv_pct"])

    def test_alternative_field_names(self):
        iv = [{"ts": 0, "ivPct": 40.0}]
        spot = [{"t": 0, "price": 100.0}]
        merged = merge_daily_iv_and_spot(iv, spot)
        assert merged.loc[0, "iv_pct"] == 40.0
        assert merged.loc[0, "spot"] == 100.0

    def test_empty(self):
        assert merge_daily_iv_and_spot([], []).empty


class TestHitRate:
    def test_flat_spot_is_all_hits(self):
        spot = _spot_candles([100.0] * 10)
        iv = _iv_points(range(10))
        result = compute_hit_rate(iv, spot, horizon_days=1, lookback_days=30)
        assert result.total == 9
        assert result.hits == 9
        assert result.hit_rate_pct == pytest.approx(100.0)

    def test_hits_and_misses(self):
        spot = _spot_candles([100.0, 100.5, 103.0, 103.0])
        iv = _iv_points(range(4), IV_ONE_PCT_DAILY)
        result = compute_hit_rate(iv, spot, horizon_days=1, lookback_days=30)
        # moves: 0.5 (hit), 2.5 (miss), 0.0 (hit)
        assert (result.hits, result.misses, result.total) == (2, 1, 3)
        assert result.hit_rate_pct == pytest.approx(200.0 / 3)

    def test_missing_iv_days_are_skipped(self):
        spot = _spot_candles([100.0] * 11)
        iv = _iv_points([0, 2, 4, 6, 8, 10])
        result = compute_hit_rate(iv, spot, horizon_days=1, lookback_days=30)
        assert result.total == 5

    def test_lookback_limits_starts(self):
        spot = _spot_candles([100.0] * 40)
        iv = _iv_points(range(40))
        result = compute_hit_rate(iv, spot, horizon_days=1, lookback_days=5)
        assert result.total == 5
        assert result.lookback_days == 5

    def test_no_data(self):
        result = compute_hit_rate([], [], 1, 30)
        assert result.total == 0
        assert math.isnan(result.hit_rate_pct)

    @pytest.mark.parametrize("horizon,lookback", [(0, 30), (1, 0), (-2, 5)])
    def test_invalid_parameters(self, horizon, lookback):
        with pytest.raises(ValueError):
            compute_hit_rate(_iv_points([0]), _spot_candles([100.0]), horizon, lookback)


class TestTimeToFirstBreach:
    def test_breach_fractions(self):
        spot = _spot_candles([100.0, 100.5, 103.0, 103.0, 103.0])
        iv = _iv_points(range(5), IV_ONE_PCT_DAILY)
        result = compute_time_to_first_breach(iv, spot, horizon_days=2, lookback_days=30)
        # start 0: breach on step 2 (1.0); start 1: step 1 (0.5); start 2: none
        assert result.with_breach == 2
        assert result.without_breach == 1
        assert result.total == 3
        assert result.avg_breach_fraction == pytest.approx(0.75)
        assert result.avg_breach_time_pct == pytest.approx(75.0)

    def test_no_breach_is_nan(self):
        spot = _spot_candles([100.0] * 6)
        iv = _iv_points(range(6))
        result = compute_time_to_first_breach(iv, spot, horizon_days=2, lookback_days=30)
        assert result.with_breach == 0
        assert result.without_breach == 4
        assert math.isnan(result.avg_breach_fraction)

    def test_invalid_horizon(self):
        with pytest.raises(ValueError, match="horizon_days"):
            compute_time_to_first_breach([], [], 0, 30)
