"""Anchor discovery for anchored VWAPs: swing pivots, month open, event candle."""

from dataclasses import dataclass
from typing import Literal, Optional

from marketkpi.candles.models import MS_PER_DAY, Candle
from marketkpi.candles.normalize import is_finite
from marketkpi.vwap.engine import REFERENCE_TZ, month_key

AnchorKind = Literal["high", "low", "month_open", "event"]


@dataclass(frozen=True)
class Anchor:
    """Start index of an anchored VWAP window."""

    index: int
    kind: AnchorKind


def _is_pivot_high(candles: list[Candle], i: int, left: int, right: int) -> bool:
    h = candles[i].high
    for k in range(i - left, i + right + 1):
        if k == i:
            continue
        if k < 0 or k >= len(candles):
            return False
        if candles[k].high >= h:
            return False
    return True


def _is_pivot_low(candles: list[Candle], i: int, left: int, right: int) -> bool:
    lo = candles[i].low
    for k in range(i - left, i + right + 1):
        if k == i:
            continue
        if k < 0 or k >= len(candles):
            return False
        if candles[k].low <= lo:
            return False
    return True


def find_last_swing_pivot(
    candles: list[Candle],
    left: int = 3,
    right: int = 3,
    lookback: Optional[int] = None,
) -> Optional[Anchor]:
    """Most recent swing pivot, scanning backward.

    A pivot high has a high strictly above every other high in
    ``[i - left, i + right]``; pivot lows mirror this.  The scan runs from
    ``len - 1 - right`` down to ``start + left`` where *start* is the
    beginning of the *lookback* window (default: last 500 candles).  At a
    given index the high test runs before the low test.
    """
    n = len(candles)
    if lookback is None:
        lookback = min(n, 500)
    start = max(0, n - lookback)

    for i in range(n - 1 - right, start + left - 1, -1):
        if _is_pivot_high(candles, i, left, right):
            return Anchor(index=i, kind="high")
        if _is_pivot_low(candles, i, left, right):
            return Anchor(index=i, kind="low")
    return None


def find_month_open_index(
    candles: list[Candle], now_ms: int, tz: str = REFERENCE_TZ
) -> Optional[int]:
    """Index of the first candle in the current reference-timezone month."""
    current = month_key(now_ms, tz)
    for i, c in enumerate(candles):
        if month_key(c.timestamp, tz) == current:
            return i
    return None


def find_event_candle_index(
    candles: list[Candle], now_ms: int, lookback_days: float = 14
) -> Optional[int]:
    """Candle with the largest ``range × volume`` inside the trailing window.

    Missing volume counts as 1, so the score falls back to the bare range.
    Ties keep the earliest candle.
    """
    cutoff = now_ms - lookback_days * MS_PER_DAY
    best_idx: Optional[int] = None
    best_score = float("-inf")

    for i, c in enumerate(candles):
        if c.timestamp < cutoff:
            continue
        vol = c.volume if is_finite(c.volume) else 1.0
        score = c.range * vol
        if score > best_score:
            best_score = score
            best_idx = i
    return best_idx


def pct_distance(spot: Optional[float], ref: Optional[float]) -> Optional[float]:
    """``(spot - ref) / ref`` as a fraction; ``None`` if undefined."""
    if not is_finite(spot) or not is_finite(ref) or ref == 0:
        return None
    return (spot - ref) / ref
