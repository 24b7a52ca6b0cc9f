"""Moving-average indicators: SMA, Bollinger-band width, spot vs SMA and
SMA trend quality.

Percent-style outputs are fractions (0.05 means 5%).  Slopes of the trend
quality KPI are kept in basis points of spot per bar because that is the
unit its regime thresholds are written in.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Sequence

from marketkpi.candles.models import bars_per_day
from marketkpi.candles.normalize import CandleLike, closes, normalize_candles
from marketkpi.indicators.trend import true_range

SmaSlope = Literal["up", "down", "flat"]

SPOT_VS_SMA_TENORS = (20, 50, 100, 200)

# |ΔSMA| within 0.05% of the SMA counts as flat
SMA_FLAT_TOLERANCE = 0.0005


def sma(values: Sequence[float], end: int, window: int) -> Optional[float]:
    """Simple mean of ``values[end - window + 1 : end + 1]``.

    ``None`` when the window reaches before the start of *values*.
    """
    start = end - window + 1
    if window < 1 or start < 0 or end >= len(values):
        return None
    return sum(values[start:end + 1]) / window


def _bars(days: float, resolution_sec: float, minimum: int) -> int:
    return max(minimum, int(math.floor(days * bars_per_day(resolution_sec) + 0.5)))


# ── Bollinger-band width ─────────────────────────────────────────────────


@dataclass(frozen=True)
class BollingerWidth:
    width: float
    width_delta: Optional[float]
    mid: float
    stdev: float


def _band_at(
    close_prices: Sequence[float], i: int, window: int, sigma: float
) -> Optional[tuple[float, float, float]]:
    if i < window - 1:
        return None
    chunk = close_prices[i - window + 1:i + 1]
    mid = sum(chunk) / window
    variance = sum((x - mid) ** 2 for x in chunk) / window
    sd = math.sqrt(variance)
    if not math.isfinite(mid) or mid == 0 or not math.isfinite(sd):
        return None
    return 2.0 * sigma * sd / mid, mid, sd


def bollinger_width(
    candles: Iterable[CandleLike],
    period_days: float = 20,
    sigma: float = 2.0,
    delta_days: float = 5,
    resolution_sec: float = 86_400,
) -> Optional[BollingerWidth]:
    """Width of the Bollinger bands relative to the middle band.

        width = (upper - lower) / middle = 2 × sigma × σ / SMA

    σ is the population standard deviation of the window, as in
    ``calculate_bollinger``.  The window is ``period_days`` converted to
    bars (at least 5) and needs 5 extra closes of history.  *width_delta*
    compares with the width ``delta_days`` earlier, walking further back
    while that width is undefined.
    """
    close_prices = closes(normalize_candles(candles))
    window = _bars(period_days, resolution_sec, 5)
    delta_bars = _bars(delta_days, resolution_sec, 1)
    if len(close_prices) < window + 5:
        return None

    last_i = len(close_prices) - 1
    last = _band_at(close_prices, last_i, window, sigma)
    if last is None:
        return None

    prev_i = max(window - 1, last_i - delta_bars)
    prev = _band_at(close_prices, prev_i, window, sigma)
    while prev is None and prev_i > window - 1:
        prev_i -= 1
        prev = _band_at(close_prices, prev_i, window, sigma)

    width, mid, sd = last
    return BollingerWidth(
        width=width,
        width_delta=width - prev[0] if prev is not None else None,
        mid=mid,
        stdev=sd,
    )


# ── Spot vs SMA ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SpotVsSma:
    tenor: int
    sma: Optional[float]
    distance: Optional[float]
    slope: Optional[SmaSlope]
    above: Optional[bool]


def sma_slope(now: Optional[float], prev: Optional[float]) -> Optional[SmaSlope]:
    """Direction of an SMA between two bars, flat inside the tolerance."""
    if now is None or prev is None:
        return None
    diff = now - prev
    eps = abs(now) * SMA_FLAT_TOLERANCE
    if diff > eps:
        return "up"
    if diff < -eps:
        return "down"
    return "flat"


def spot_vs_sma(
    candles: Iterable[CandleLike],
    tenors: Sequence[int] = SPOT_VS_SMA_TENORS,
) -> list[SpotVsSma]:
    """Distance of the last close from each SMA tenor, plus the SMA slope.

    ``distance = (spot - SMA) / SMA``; tenors without enough history give
    a row with ``None`` values.
    """
    close_prices = closes(normalize_candles(candles))
    if not close_prices:
        return []
    last = len(close_prices) - 1
    spot = close_prices[last]

    rows = []
    for tenor in tenors:
        now = sma(close_prices, last, tenor)
        prev = sma(close_prices, last - 1, tenor)
        distance = (spot - now) / now if now else None
        above = None if distance is None else distance >= 0
        rows.append(SpotVsSma(tenor, now, distance, sma_slope(now, prev), above))
    return rows


# ── SMA trend quality ────────────────────────────────────────────────────


@dataclass(frozen=True)
class SmaTrendQuality:
    separation: float
    slope_fast_bps: float
    slope_slow_bps: float
    direction: Literal["uptrend", "downtrend", "mixed"]
    regime: Literal["range-friendly", "grindy trend risk", "transition"]
    atr: Optional[float] = None


def classify_trend_quality(
    separation: float, slope_fast_bps: float, slope_slow_bps: float
) -> tuple[str, str]:
    """Return ``(direction, regime)`` for an SMA pair.

    Both slopes and the separation agreeing in sign gives a trend
    direction.  A tight, flat pair is range-friendly; a wide pair with a
    meaningful slope is a grinding trend.
    """
    if separation > 0 and slope_fast_bps > 0 and slope_slow_bps > 0:
        direction = "uptrend"
    elif separation < 0 and slope_fast_bps < 0 and slope_slow_bps < 0:
        direction = "downtrend"
    else:
        direction = "mixed"

    sep, fast, slow = abs(separation), abs(slope_fast_bps), abs(slope_slow_bps)
    if sep < 0.02 and fast < 5 and slow < 3:
        regime = "range-friendly"
    elif sep >= 0.06 and (fast >= 10 or slow >= 6):
        regime = "grindy trend risk"
    else:
        regime = "transition"
    return direction, regime


def _simple_atr(candles: list, window: int) -> Optional[float]:
    trs = [true_range(candles[i], candles[i - 1].close) for i in range(1, len(candles))]
    if len(trs) < window:
        return None
    return sum(trs[-window:]) / window


def sma_trend_quality(
    candles: Iterable[CandleLike],
    fast: int = 50,
    slow: int = 100,
    atr_window: int = 14,
) -> Optional[SmaTrendQuality]:
    """Separation and one-bar slopes of a fast/slow SMA pair.

        separation = (SMA_fast - SMA_slow) / spot
        slope_bps  = (SMA_now - SMA_prev) / spot × 10 000

    ``None`` without a positive last close or when either SMA lacks one
    bar of history beyond its window.  *atr* is the plain mean of the
    last *atr_window* true ranges, ``None`` when too short.
    """
    data = normalize_candles(candles)
    close_prices = closes(data)
    if not close_prices or close_prices[-1] <= 0:
        return None
    last = len(close_prices) - 1
    spot = close_prices[last]

    fast_now, fast_prev = sma(close_prices, last, fast), sma(close_prices, last - 1, fast)
    slow_now, slow_prev = sma(close_prices, last, slow), sma(close_prices, last - 1, slow)
    if None in (fast_now, fast_prev, slow_now, slow_prev):
        return None

    separation = (fast_now - slow_now) / spot
    slope_fast = (fast_now - fast_prev) / spot * 10_000
    slope_slow = (slow_now - slow_prev) / spot * 10_000
    direction, regime = classify_trend_quality(separation, slope_fast, slope_slow)
    return SmaTrendQuality(
        separation=separation,
        slope_fast_bps=slope_fast,
        slope_slow_bps=slope_slow,
        direction=direction,
        regime=regime,
        atr=_simple_atr(data, atr_window),
    )
