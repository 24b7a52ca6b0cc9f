"""KPI composition: plain numeric summaries built from the analytics core.

These are the values a dashboard card shows (before any formatting) and
the persistence layer stores.  Undefined components stay ``None``.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from marketkpi.candles.models import window_bars_from_days
from marketkpi.candles.normalize import CandleLike, is_finite, normalize_candles
from marketkpi.indicators.trend import adx_delta, adx_latest, adx_series, atr_wilder_last
from marketkpi.indicators.volatility import DAYS_IN_YEAR, realized_vol_from_candles, rv_em_factor
from marketkpi.vwap.anchors import (
    Anchor,
    find_event_candle_index,
    find_last_swing_pivot,
    find_month_open_index,
    pct_distance,
)
from marketkpi.vwap.engine import REFERENCE_TZ, session_vwap, vwap_from

logger = logging.getLogger("marketkpi")

ADX_HOT_LEVEL = 25.0


@dataclass(frozen=True)
class VwapAnchorSummary:
    spot: Optional[float]
    session_vwap: Optional[float]
    session_distance: Optional[float]
    swing_anchor: Optional[Anchor]
    avwap_swing: Optional[float]
    swing_distance: Optional[float]
    month_open_index: Optional[int]
    avwap_month: Optional[float]
    month_distance: Optional[float]
    event_index: Optional[int]
    avwap_event: Optional[float]
    event_distance: Optional[float]
    max_stretch_anchor: Optional[str]
    max_stretch: Optional[float]
    adx: Optional[float]
    adx_hot: bool


@dataclass(frozen=True)
class AdxSummary:
    timestamp: Optional[int]
    adx: Optional[float]
    di_plus: Optional[float]
    di_minus: Optional[float]
    adx_delta: Optional[float]


@dataclass(frozen=True)
class AtrEmRatio:
    atr: Optional[float]
    expected_move: Optional[float]
    ratio: Optional[float]


@dataclass(frozen=True)
class IvRvSummary:
    realized_vol: Optional[float]
    implied_vol: Optional[float]
    spread: Optional[float]  # IV - RV, annualized decimal
    rv_iv_factor: Optional[float]


def vwap_anchor_summary(
    candles: Iterable[CandleLike],
    now_ms: int,
    adx_value: Optional[float] = None,
    tz: str = REFERENCE_TZ,
    event_lookback_days: float = 14,
    swing_left: int = 3,
    swing_right: int = 3,
    swing_lookback: int = 500,
) -> VwapAnchorSummary:
    """Session VWAP plus swing, month-open and event anchored VWAPs.

    ``max_stretch`` is the spot distance to whichever anchored VWAP is
    farthest away (earlier anchors win ties, in swing/month/event order).
    """
    data = normalize_candles(candles)
    spot = data[-1].close if data else None

    session = session_vwap(data, now_ms, tz)
    swing = find_last_swing_pivot(data, swing_left, swing_right, swing_lookback)
    month_idx = find_month_open_index(data, now_ms, tz)
    event_idx = find_event_candle_index(data, now_ms, event_lookback_days)

    avwap_swing = vwap_from(data, swing.index) if swing else None
    avwap_month = vwap_from(data, month_idx) if month_idx is not None else None
    avwap_event = vwap_from(data, event_idx) if event_idx is not None else None

    distances = {
        "swing": pct_distance(spot, avwap_swing),
        "month_open": pct_distance(spot, avwap_month),
        "event": pct_distance(spot, avwap_event),
    }

    best_label = None
    best = None
    for label, d in distances.items():
        if d is None:
            continue
        if best is None or abs(d) > abs(best):
            best_label, best = label, d

    if best is None:
        logger.debug("No anchored VWAP could be computed (check volume data).")

    adx = adx_value if is_finite(adx_value) else None
    return VwapAnchorSummary(
        spot=spot,
        session_vwap=session,
        session_distance=pct_distance(spot, session),
        swing_anchor=swing,
        avwap_swing=avwap_swing,
        swing_distance=distances["swing"],
        month_open_index=month_idx,
        avwap_month=avwap_month,
        month_distance=distances["month_open"],
        event_index=event_idx,
        avwap_event=avwap_event,
        event_distance=distances["event"],
        max_stretch_anchor=best_label,
        max_stretch=best,
        adx=adx,
        adx_hot=adx is not None and adx >= ADX_HOT_LEVEL,
    )


def adx_summary(
    candles: Iterable[CandleLike], period: int = 14, delta_bars: int = 5
) -> AdxSummary:
    """Latest ADX/DI values and the ADX change over *delta_bars*."""
    series = adx_series(candles, period)
    latest = adx_latest(series)
    if latest is None:
        logger.debug("ADX(%d) undefined for %d candles.", period, len(series))
        return AdxSummary(None, None, None, None, None)
    return AdxSummary(
        timestamp=latest.timestamp,
        adx=latest.adx,
        di_plus=latest.di_plus,
        di_minus=latest.di_minus,
        adx_delta=adx_delta(series, delta_bars),
    )


def atr_em_ratio(
    candles: Iterable[CandleLike],
    expected_move_abs: Optional[float],
    atr_days: float = 5,
    resolution_sec: float = 86_400,
) -> AtrEmRatio:
    """Short-horizon ATR relative to the absolute expected move."""
    atr = atr_wilder_last(candles, window_bars_from_days(atr_days, resolution_sec))
    em = expected_move_abs if is_finite(expected_move_abs) else None
    ratio = atr / em if atr is not None and em is not None and em > 0 else None
    return AtrEmRatio(atr=atr, expected_move=em, ratio=ratio)


def iv_rv_summary(
    candles: Iterable[CandleLike],
    iv_ann: Optional[float],
    window_days: float = 20,
    resolution_sec: float = 86_400,
    annualization_days: float = DAYS_IN_YEAR,
) -> IvRvSummary:
    """Realized vs implied volatility on the same annualized basis."""
    rv = realized_vol_from_candles(candles, window_days, resolution_sec, annualization_days)
    iv = iv_ann if is_finite(iv_ann) else None
    spread = iv - rv if iv is not None and rv is not None else None
    return IvRvSummary(
        realized_vol=rv,
        implied_vol=iv,
        spread=spread,
        rv_iv_factor=rv_em_factor(rv, iv),
    )
