"""Tests for marketkpi.candles: normalization and resolution helpers."""

import math

from marketkpi.candles.models import (
    Candle,
    bars_per_day,
    bars_per_year,
    window_bars_from_days,
)
from marketkpi.candles.normalize import (
    candle_from_record,
    closes,
    is_finite,
    normalize_candles,
)


class TestNormalizeCandles:
    def test_sorts_ascending_by_timestamp(self):
        out = normalize_candles([
            {"ts": 3000, "close": 3.0},
            {"ts": 1000, "close": 1.0},
            {"ts": 2000, "close": 2.0},
        ])
        assert [c.timestamp for c in out] == [1000, 2000, 3000]

    def test_drops_non_finite_close_and_timestamp(self):
        out = normalize_candles([
            {"ts": 1000, "close": float("nan")},
            {"ts": float("inf"), "close": 5.0},
            {"ts": 2000, "close": None},
            {"ts": 3000, "close": 7.0},
        ])
        assert len(out) == 1
        assert out[0].close == 7.0

    def test_fills_missing_ohlc_from_close(self):
        out = normalize_candles([
            {"timestamp": 1, "close": 10.0, "high": float("nan"), "volume": float("nan")},
        ])
        c = out[0]
        assert c.open == 10.0
        assert c.high == 10.0
        assert c.low == 10.0
        assert c.volume is None

    def test_keeps_supplied_fields(self):
        c = normalize_candles([
            {"t": 5, "o": 9.0, "h": 11.0, "l": 8.0, "c": 10.0, "v": 250},
        ])[0]
        assert (c.open, c.high, c.low, c.close, c.volume) == (9.0, 11.0, 8.0, 10.0, 250.0)

    def test_records_without_timestamp_use_position(self):
        out = normalize_candles([{"c": 100}, {"c": 102}, {"c": 101}])
        assert [c.timestamp for c in out] == [0, 1, 2]
        assert closes(out) == [100.0, 102.0, 101.0]

    def test_duplicate_timestamp_keeps_last(self):
        out = normalize_candles([
            {"ts": 1000, "close": 1.0},
            {"ts": 1000, "close": 2.0},
        ])
        assert len(out) == 1
        assert out[0].close == 2.0

    def test_accepts_candle_objects(self):
        raw = Candle(timestamp=5, close=3.0, open=float("nan"), high=4.0, low=2.0)
        out = normalize_candles([raw])
        assert out[0].open == 3.0
        assert out[0].high == 4.0

    def test_idempotent(self):
        once = normalize_candles([
            {"ts": 3, "close": 3.0, "volume": 10},
            {"ts": 1, "close": 1.0},
            {"ts": 2, "close": float("nan")},
        ])
        assert normalize_candles(once) == once

    def test_empty_input(self):
        assert normalize_candles([]) == []


class TestCandleFromRecord:
    def test_missing_timestamp_without_default_is_rejected(self):
        assert candle_from_record({"close": 1.0}) is None

    def test_bad_timestamp_does_not_fall_back_to_position(self):
        assert candle_from_record({"ts": float("inf"), "close": 5.0}, default_timestamp=1) is None
        assert candle_from_record({"time": float("nan"), "close": 5.0}, default_timestamp=1) is None
        assert candle_from_record({"t": None, "close": 5.0}, default_timestamp=1) is None

    def test_position_used_only_without_timestamp_field(self):
        c = candle_from_record({"close": 5.0}, default_timestamp=4)
        assert c.timestamp == 4

    def test_booleans_are_not_numbers(self):
        assert not is_finite(True)
        assert candle_from_record({"ts": 1, "close": True}) is None


class TestResolutionHelpers:
    def test_bars_per_day(self):
        assert bars_per_day(86_400) == 1
        assert bars_per_day(3_600) == 24

    def test_window_bars_from_days(self):
        assert window_bars_from_days(20, 86_400) == 20
        assert window_bars_from_days(1, 3_600) == 24
        # Never below two bars
        assert window_bars_from_days(0.5, 86_400) == 2

    def test_bars_per_year(self):
        assert bars_per_year(365, 86_400) == 365
        assert bars_per_year(365, 3_600) == 8_760

    def test_typical_price_and_range(self):
        c = Candle(timestamp=0, close=9.0, open=9.0, high=12.0, low=6.0)
        assert c.typical_price == 9.0
        assert c.range == 6.0
        assert not math.isnan(c.typical_price)
