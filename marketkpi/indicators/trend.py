"""Trend indicators: Wilder True Range, ATR and ADX/DI. Pure functions, no I/O.

All functions normalize their input first and return ``None`` (or points
with ``None`` fields) when there is not enough history.  Wilder smoothing
is expressed as running sums: ``S_i = S_{i-1} - S_{i-1}/period + x_i``.
"""

from dataclasses import dataclass
from typing import Iterable, Literal, Optional

from marketkpi.candles.models import Candle, window_bars_from_days
from marketkpi.candles.normalize import CandleLike, normalize_candles


@dataclass
class IndicatorPoint:
    """Indicator values aligned to one input candle."""

    timestamp: int
    atr: Optional[float] = None
    di_plus: Optional[float] = None
    di_minus: Optional[float] = None
    dx: Optional[float] = None
    adx: Optional[float] = None


def _period(period: int) -> int:
    return max(2, int(period))


def true_range(candle: Candle, prev_close: float) -> float:
    """Wilder True Range of *candle* given the previous close.

        TR = max(high - low, |high - prev_close|, |low - prev_close|)
    """
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


def _true_ranges(candles: list[Candle]) -> list[float]:
    """TR aligned to candle index; index 0 has no previous close and is 0."""
    tr = [0.0] * len(candles)
    for i in range(1, len(candles)):
        tr[i] = true_range(candles[i], candles[i - 1].close)
    return tr


# ── ATR ──────────────────────────────────────────────────────────────────


def atr_wilder_series(
    candles: Iterable[CandleLike], period: int = 14
) -> list[IndicatorPoint]:
    """Wilder ATR for every candle.

    The seed at index *period* is the mean of ``TR_1..TR_period``; later
    values follow the running-sum recursion.  Requires ``period + 1``
    candles; shorter series come back with ``atr`` unset everywhere.
    """
    data = normalize_candles(candles)
    p = _period(period)
    out = [IndicatorPoint(timestamp=c.timestamp) for c in data]
    if len(data) < p + 1:
        return out

    tr = _true_ranges(data)
    sum_tr = sum(tr[1 : p + 1])
    out[p].atr = sum_tr / p

    for i in range(p + 1, len(data)):
        sum_tr = sum_tr - sum_tr / p + tr[i]
        out[i].atr = sum_tr / p

    return out


def atr_wilder_last(candles: Iterable[CandleLike], period: int = 14) -> Optional[float]:
    """Latest Wilder ATR in price units, or ``None`` with < period+1 candles."""
    series = atr_wilder_series(candles, period)
    if not series or series[-1].atr is None:
        return None
    return series[-1].atr


def atr_latest(
    candles: Iterable[CandleLike], period: int = 14
) -> Optional[IndicatorPoint]:
    """Most recent point that carries an ATR value."""
    for point in reversed(atr_wilder_series(candles, period)):
        if point.atr is not None:
            return point
    return None


def atr_percent_last(candles: Iterable[CandleLike], period: int = 14) -> Optional[float]:
    """ATR divided by the last close (0.02 means 2%)."""
    data = normalize_candles(candles)
    if not data or data[-1].close <= 0:
        return None
    atr = atr_wilder_last(data, period)
    if atr is None:
        return None
    return atr / data[-1].close


def atr_wilder_last_from_days(
    candles: Iterable[CandleLike], window_days: float, resolution_sec: float
) -> Optional[float]:
    return atr_wilder_last(candles, window_bars_from_days(window_days, resolution_sec))


def atr_percent_last_from_days(
    candles: Iterable[CandleLike], window_days: float, resolution_sec: float
) -> Optional[float]:
    return atr_percent_last(candles, window_bars_from_days(window_days, resolution_sec))


# ── ADX ──────────────────────────────────────────────────────────────────


AdxPhase = Literal["seeding", "smoothing"]


class AdxSmoother:
    """Two-phase ADX accumulator.

    While ``phase == "seeding"`` DX values are collected and no ADX is
    produced.  The *period*-th DX value yields the first ADX as the plain
    mean of the collected block, and the smoother switches to
    ``"smoothing"``, where each DX updates
    ``ADX = (ADX_prev * (period - 1) + DX) / period``.
    """

    def __init__(self, period: int) -> None:
        self._period = _period(period)
        self._seed: list[float] = []
        self._adx: Optional[float] = None
        self.phase: AdxPhase = "seeding"

    @property
    def value(self) -> Optional[float]:
        return self._adx

    def update(self, dx: float) -> Optional[float]:
        """Feed one DX value; returns the ADX after it, if any."""
        if self.phase == "seeding":
            self._seed.append(dx)
            if len(self._seed) == self._period:
                self._adx = sum(self._seed) / self._period
                self.phase = "smoothing"
            return self._adx

        self._adx = (self._adx * (self._period - 1) + dx) / self._period
        return self._adx


def directional_movement(cur: Candle, prev: Candle) -> tuple[float, float]:
    """Return ``(+DM, -DM)`` for the move from *prev* to *cur*."""
    up_move = cur.high - prev.high
    down_move = prev.low - cur.low
    pdm = up_move if (up_move > down_move and up_move > 0) else 0.0
    mdm = down_move if (down_move > up_move and down_move > 0) else 0.0
    return pdm, mdm


def adx_series(candles: Iterable[CandleLike], period: int = 14) -> list[IndicatorPoint]:
    """Calculate ATR, +DI, -DI, DX and ADX for every candle.

    Algorithm:
        1. +DM / -DM and TR per bar (from bar i-1 to bar i).
        2. Seed running sums with bars ``1..period``; Wilder-update after.
        3. +DI = 100 × sum+DM / sumTR, -DI likewise.
        4. DX = 100 × |+DI − -DI| / (+DI + -DI), 0 when both DI are 0.
        5. ADX via :class:`AdxSmoother` (first value at ``2·period − 1``).

    DI/DX/ATR are set from index *period* on; a bar whose smoothed TR is
    not positive carries no DI/DX and does not advance the ADX smoother.
    """
    data = normalize_candles(candles)
    p = _period(period)
    n = len(data)
    out = [IndicatorPoint(timestamp=c.timestamp) for c in data]
    if n < p + 1:
        return out

    tr = [0.0] * n
    dm_plus = [0.0] * n
    dm_minus = [0.0] * n
    for i in range(1, n):
        tr[i] = true_range(data[i], data[i - 1].close)
        dm_plus[i], dm_minus[i] = directional_movement(data[i], data[i - 1])

    sum_tr = sum(tr[1 : p + 1])
    sum_dmp = sum(dm_plus[1 : p + 1])
    sum_dmm = sum(dm_minus[1 : p + 1])
    smoother = AdxSmoother(p)

    for i in range(p, n):
        if i > p:
            sum_tr = sum_tr - sum_tr / p + tr[i]
            sum_dmp = sum_dmp - sum_dmp / p + dm_plus[i]
            sum_dmm = sum_dmm - sum_dmm / p + dm_minus[i]

        if sum_tr <= 0:
            continue

        di_plus = 100.0 * sum_dmp / sum_tr
        di_minus = 100.0 * sum_dmm / sum_tr
        di_sum = di_plus + di_minus
        dx = 100.0 * abs(di_plus - di_minus) / di_sum if di_sum > 0 else 0.0

        point = out[i]
        point.atr = sum_tr / p
        point.di_plus = di_plus
        point.di_minus = di_minus
        point.dx = dx
        point.adx = smoother.update(dx)

    return out


def adx_latest(series: list[IndicatorPoint]) -> Optional[IndicatorPoint]:
    """Last point carrying an ADX or DI value."""
    for point in reversed(series):
        if point.adx is not None or point.di_plus is not None or point.di_minus is not None:
            return point
    return None


def adx_delta(series: list[IndicatorPoint], delta_bars: int) -> Optional[float]:
    """Latest ADX minus the ADX at or before *delta_bars* earlier."""
    last_idx = next(
        (i for i in range(len(series) - 1, -1, -1) if series[i].adx is not None),
        -1,
    )
    if last_idx < 0:
        return None

    start = min(last_idx - max(1, delta_bars), len(series) - 1)
    for i in range(start, -1, -1):
        prev = series[i].adx
        if prev is not None:
            return series[last_idx].adx - prev
    return None
