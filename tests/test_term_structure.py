"""Tests for the ATM implied-vol term structure helpers."""

import pytest

from marketkpi.indicators.term_structure import (
    classify_term_structure,
    linreg_slope,
    term_structure_stats,
)


class TestLinregSlope:
    def test_exact_line(self):
        assert linreg_slope([0.1, 0.2, 0.3], [0.5, 0.6, 0.7]) == pytest.approx(1.0)

    def test_uses_common_prefix(self):
        assert linreg_slope([0.1, 0.2, 0.3], [0.5, 0.4]) == pytest.approx(-1.0)

    def test_degenerate_inputs(self):
        assert linreg_slope([0.1], [0.5]) is None
        assert linreg_slope([0.2, 0.2], [0.5, 0.6]) is None


class TestClassify:
    def test_labels(self):
        assert classify_term_structure(0.01, 0.02) == "contango"
        assert classify_term_structure(-0.01, -0.02) == "backwardation"
        assert classify_term_structure(0.004, 0.1) == "flat"
        assert classify_term_structure(0.01, -0.01) == "flat"

    def test_tolerance_is_exclusive(self):
        assert classify_term_structure(0.005, 0.1) == "flat"

    def test_missing_values(self):
        assert classify_term_structure(None, 0.1) == "insufficient"
        assert classify_term_structure(0.1, None) == "insufficient"


class TestTermStructureStats:
    def test_upward_curve(self):
        stats = term_structure_stats([
            {"dte": 30, "iv": 0.6},
            {"dte": 7, "iv": 0.5},
            {"dte": 90, "iv": 0.7},
        ])
        assert stats.n == 3
        assert stats.term_premium == pytest.approx(0.2)
        assert stats.slope_per_year > 0
        assert stats.label == "contango"

    def test_inverted_curve(self):
        stats = term_structure_stats([{"dte": 7, "iv": 0.9}, {"dte": 60, "iv": 0.6}])
        assert stats.term_premium == pytest.approx(-0.3)
        assert stats.label == "backwardation"

    def test_unusable_points_are_skipped(self):
        stats = term_structure_stats([
            {"dte": 0, "iv": 0.5},
            {"dte": 7, "iv": None},
            {"ttmY": 0.1, "iv": 55},
        ])
        assert stats.n == 1
        assert stats.slope_per_year is None
        assert stats.term_premium is None
        assert stats.label == "insufficient"

    def test_percent_iv_is_normalized(self):
        stats = term_structure_stats([{"dte": 7, "iv": 50}, {"dte": 37, "iv": 0.6}])
        assert stats.term_premium == pytest.approx(0.1)

    def test_ordered_by_days_regressed_on_ttm(self):
        stats = term_structure_stats([
            {"dte": 30, "ttmY": 0.1, "iv": 0.6},
            {"dte": 7, "ttmY": 0.5, "iv": 0.5},
        ])
        assert stats.term_premium == pytest.approx(0.1)
        assert stats.slope_per_year == pytest.approx(-0.25)
        assert stats.label == "flat"

    def test_empty(self):
        assert term_structure_stats([]).label == "insufficient"
