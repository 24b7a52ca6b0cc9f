"""VWAP engine: volume-weighted and equal-weighted average price over a range.

Calendar keys (session day, month) are computed in a fixed reference
timezone so results do not depend on where the caller runs.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from marketkpi.candles.models import Candle
from marketkpi.candles.normalize import is_finite

REFERENCE_TZ = "Europe/Berlin"


def typical_price(candle: Candle) -> float:
    """``(high + low + close) / 3``."""
    return candle.typical_price


def vwap_range(
    candles: list[Candle],
    start: int,
    end: Optional[int] = None,
    equal_weight_fallback: bool = False,
) -> Optional[float]:
    """Average typical price over ``candles[start:end + 1]``.

    Only bars with a positive finite volume contribute to the weighted
    average.  If none does, the result is ``None`` unless
    *equal_weight_fallback* is set, in which case every bar in the range
    gets weight 1.  An empty range is always ``None``.
    """
    if end is None:
        end = len(candles) - 1
    start = max(0, start)
    end = min(end, len(candles) - 1)
    if start > end:
        return None

    window = [c for c in candles[start : end + 1] if is_finite(c.typical_price)]
    if not window:
        return None

    pv = 0.0
    v = 0.0
    for c in window:
        if c.volume is None or not is_finite(c.volume) or c.volume <= 0:
            continue
        pv += c.typical_price * c.volume
        v += c.volume

    if v > 0:
        return pv / v
    if not equal_weight_fallback:
        return None
    return sum(c.typical_price for c in window) / len(window)


def vwap_from(
    candles: list[Candle], start: int, equal_weight_fallback: bool = False
) -> Optional[float]:
    """VWAP from *start* to the last candle (an anchored VWAP)."""
    return vwap_range(candles, start, None, equal_weight_fallback)


# ── Calendar keys ────────────────────────────────────────────────────────


def _local(ts_ms: int, tz: str) -> datetime:
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).astimezone(ZoneInfo(tz))


def day_key(ts_ms: int, tz: str = REFERENCE_TZ) -> str:
    """``YYYY-MM-DD`` of *ts_ms* in the reference timezone."""
    return _local(ts_ms, tz).strftime("%Y-%m-%d")


def month_key(ts_ms: int, tz: str = REFERENCE_TZ) -> str:
    """``YYYY-MM`` of *ts_ms* in the reference timezone."""
    return _local(ts_ms, tz).strftime("%Y-%m")


def session_start_index(
    candles: list[Candle], now_ms: int, tz: str = REFERENCE_TZ
) -> Optional[int]:
    """Index of the first candle on the same reference-timezone day as *now_ms*."""
    today = day_key(now_ms, tz)
    for i, c in enumerate(candles):
        if day_key(c.timestamp, tz) == today:
            return i
    return None


def session_vwap(
    candles: list[Candle],
    now_ms: int,
    tz: str = REFERENCE_TZ,
    equal_weight_fallback: bool = False,
) -> Optional[float]:
    """VWAP of today's session (reference timezone) up to the last candle."""
    start = session_start_index(candles, now_ms, tz)
    if start is None:
        return None
    return vwap_from(candles, start, equal_weight_fallback)
