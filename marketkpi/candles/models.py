"""Candle data model: the validated OHLC record every indicator consumes."""

import math
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """A single OHLC bar after normalization.

    ``open``/``high``/``low`` are always populated (they default to
    ``close``); ``volume`` stays ``None`` when the producer did not supply a
    finite value.
    """

    timestamp: int  # ms epoch
    close: float
    open: float
    high: float
    low: float
    volume: Optional[float] = None

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    @property
    def range(self) -> float:
        return max(0.0, self.high - self.low)


# ── Resolution helpers ───────────────────────────────────────────────────

SECONDS_PER_DAY = 86_400
MS_PER_DAY = SECONDS_PER_DAY * 1000


def bars_per_day(resolution_sec: float) -> float:
    """Bars per day implied by the resolution (86400 → 1, 3600 → 24)."""
    return SECONDS_PER_DAY / max(1.0, resolution_sec)


def window_bars_from_days(window_days: float, resolution_sec: float) -> int:
    """Convert a trailing window in days into a bar count (at least 2)."""
    bars = max(1.0, window_days) * bars_per_day(resolution_sec)
    return max(2, int(math.floor(bars + 0.5)))


def bars_per_year(annualization_days: float, resolution_sec: float) -> float:
    """Bars per year used to annualize per-bar variance."""
    return max(1.0, annualization_days) * bars_per_day(resolution_sec)
