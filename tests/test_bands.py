"""Tests for SMA, Bollinger-band width, spot vs SMA and SMA trend quality."""

import statistics

import pytest

from marketkpi.candles.models import Candle
from marketkpi.indicators.bands import (
    bollinger_width,
    classify_trend_quality,
    sma,
    sma_slope,
    sma_trend_quality,
    spot_vs_sma,
)


def _make_candle(ts: int, c: float) -> Candle:
    return Candle(timestamp=ts, open=c, high=c + 0.5, low=c - 0.5, close=c)


def _series(prices: list[float]) -> list[Candle]:
    return [_make_candle(i, p) for i, p in enumerate(prices)]


class TestSma:
    def test_window_mean(self):
        assert sma([1.0, 2.0, 3.0, 4.0], 3, 2) == pytest.approx(3.5)
        assert sma([1.0, 2.0, 3.0, 4.0], 3, 4) == pytest.approx(2.5)

    def test_window_before_start(self):
        assert sma([1.0, 2.0, 3.0], 0, 2) is None
        assert sma([1.0, 2.0, 3.0], -1, 1) is None

    def test_slope_tolerance(self):
        assert sma_slope(100.0, 99.0) == "up"
        assert sma_slope(100.0, 101.0) == "down"
        # 0.05% of 100 is 0.05
        assert sma_slope(100.0, 99.97) == "flat"
        assert sma_slope(None, 99.0) is None


class TestBollingerWidth:
    def test_flat_prices_have_zero_width(self):
        bb = bollinger_width(_series([100.0] * 25))
        assert bb.width == 0.0
        assert bb.width_delta == 0.0
        assert bb.mid == 100.0
        assert bb.stdev == 0.0

    def test_needs_window_plus_five_closes(self):
        assert bollinger_width(_series([100.0] * 24)) is None

    def test_alternating_prices(self):
        # Population σ of ±1 around 100 is exactly 1
        bb = bollinger_width(_series([99.0, 101.0] * 15))
        assert bb.mid == pytest.approx(100.0)
        assert bb.stdev == pytest.approx(1.0)
        assert bb.width == pytest.approx(0.04)
        assert bb.width_delta == pytest.approx(0.0)

    def test_width_delta_against_earlier_window(self):
        prices = [100.0] * 25 + [102.0, 98.0, 103.0, 97.0, 104.0]
        bb = bollinger_width(_series(prices))
        window = prices[-20:]
        expected = 2 * 2.0 * statistics.pstdev(window) / statistics.fmean(window)
        assert bb.width == pytest.approx(expected)
        # The window five bars back is all 100
        assert bb.width_delta == pytest.approx(expected)

    def test_sigma_scales_width(self):
        prices = [99.0, 101.0] * 15
        narrow = bollinger_width(_series(prices), sigma=1.0)
        wide = bollinger_width(_series(prices), sigma=3.0)
        assert wide.width == pytest.approx(3 * narrow.width)

    def test_intraday_resolution(self):
        # One day of hourly bars is a 24-bar window
        prices = [99.0, 101.0] * 15
        assert bollinger_width(_series(prices[:28]), period_days=1, resolution_sec=3_600) is None
        assert bollinger_width(_series(prices[:29]), period_days=1, resolution_sec=3_600) is not None


class TestSpotVsSma:
    def test_rising_prices(self):
        rows = spot_vs_sma(_series([100.0 + i for i in range(60)]))
        assert [r.tenor for r in rows] == [20, 50, 100, 200]

        r20 = rows[0]
        assert r20.sma == pytest.approx(149.5)
        assert r20.distance == pytest.approx(9.5 / 149.5)
        assert r20.slope == "up"
        assert r20.above is True

    def test_short_history_rows_are_empty(self):
        rows = spot_vs_sma(_series([100.0 + i for i in range(60)]))
        r100 = rows[2]
        assert r100.sma is None
        assert r100.distance is None
        assert r100.slope is None
        assert r100.above is None

    def test_small_move_is_flat(self):
        rows = spot_vs_sma(_series([100.0] * 20 + [100.5]), tenors=(20,))
        assert rows[0].slope == "flat"
        assert rows[0].above is True

    def test_below_sma(self):
        rows = spot_vs_sma(_series([100.0] * 20 + [90.0]), tenors=(20,))
        assert rows[0].distance < 0
        assert rows[0].above is False
        assert rows[0].slope == "down"

    def test_empty_input(self):
        assert spot_vs_sma([]) == []


class TestSmaTrendQuality:
    def test_needs_one_bar_beyond_slow_window(self):
        assert sma_trend_quality(_series([100.0] * 100)) is None
        assert sma_trend_quality(_series([100.0] * 101)) is not None

    def test_rising_trend(self):
        q = sma_trend_quality(_series([100.0 + i for i in range(101)]))
        # SMA50 = 175.5, SMA100 = 150.5, spot = 200
        assert q.separation == pytest.approx(0.125)
        assert q.slope_fast_bps == pytest.approx(50.0)
        assert q.slope_slow_bps == pytest.approx(50.0)
        assert q.direction == "uptrend"
        assert q.regime == "grindy trend risk"
        # TR of each bar is |high - prev close| = 1.5
        assert q.atr == pytest.approx(1.5)

    def test_flat_market_is_range_friendly(self):
        q = sma_trend_quality(_series([100.0] * 101))
        assert q.separation == 0.0
        assert q.direction == "mixed"
        assert q.regime == "range-friendly"

    def test_non_positive_spot(self):
        assert sma_trend_quality(_series([100.0] * 100 + [0.0])) is None

    def test_classification(self):
        assert classify_trend_quality(-0.07, -12.0, -1.0) == ("downtrend", "grindy trend risk")
        assert classify_trend_quality(0.03, 2.0, 1.0) == ("uptrend", "transition")
        assert classify_trend_quality(0.01, 6.0, 1.0) == ("uptrend", "transition")
        assert classify_trend_quality(0.01, -1.0, 1.0) == ("mixed", "range-friendly")
