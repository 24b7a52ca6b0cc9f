"""Candle normalizer: sort, de-duplicate and fill OHLC records.

Every indicator in the package consumes the output of ``normalize_candles``;
raw producer records (objects or mappings with loosely named fields) never
reach the numerical code directly.
"""

import math
import numbers
from typing import Any, Iterable, Mapping, Optional, Union

from marketkpi.candles.models import Candle


def is_finite(value: Any) -> bool:
    """True for real (non-bool) numbers that are neither NaN nor infinite."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def first_finite(*values: Any) -> Optional[float]:
    """Return the first finite number among *values*, else ``None``."""
    for v in values:
        if is_finite(v):
            return v
    return None


# Producers disagree on field names; checked in this order.
TIMESTAMP_FIELDS = ("timestamp", "ts", "time", "t")
OPEN_FIELDS = ("open", "o")
HIGH_FIELDS = ("high", "h")
LOW_FIELDS = ("low", "l")
CLOSE_FIELDS = ("close", "c", "price")
VOLUME_FIELDS = ("volume", "v", "vol")


def _lookup(record: Mapping[str, Any], names: tuple[str, ...]) -> Optional[float]:
    return first_finite(*(record.get(n) for n in names))


def candle_from_record(
    record: Mapping[str, Any],
    default_timestamp: Optional[int] = None,
) -> Optional[Candle]:
    """Build a :class:`Candle` from a loosely-keyed mapping.

    Returns ``None`` when the close is missing or non-finite, or when a
    timestamp field is present but non-finite.  *default_timestamp* is
    only used for records that carry no timestamp field at all.
    """
    close = _lookup(record, CLOSE_FIELDS)
    if close is None:
        return None

    ts = _lookup(record, TIMESTAMP_FIELDS)
    if ts is None:
        if default_timestamp is None or any(n in record for n in TIMESTAMP_FIELDS):
            return None
        ts = default_timestamp

    return _filled(
        int(ts),
        close,
        _lookup(record, OPEN_FIELDS),
        _lookup(record, HIGH_FIELDS),
        _lookup(record, LOW_FIELDS),
        _lookup(record, VOLUME_FIELDS),
    )


def _filled(
    ts: int,
    close: float,
    open_: Optional[float],
    high: Optional[float],
    low: Optional[float],
    volume: Optional[float],
) -> Candle:
    return Candle(
        timestamp=ts,
        close=float(close),
        open=float(open_) if open_ is not None else float(close),
        high=float(high) if high is not None else float(close),
        low=float(low) if low is not None else float(close),
        volume=float(volume) if volume is not None else None,
    )


def _from_candle(c: Candle) -> Optional[Candle]:
    if not is_finite(c.timestamp) or not is_finite(c.close):
        return None
    return _filled(
        int(c.timestamp),
        c.close,
        first_finite(c.open),
        first_finite(c.high),
        first_finite(c.low),
        first_finite(c.volume),
    )


CandleLike = Union[Candle, Mapping[str, Any]]


def normalize_candles(candles: Iterable[CandleLike]) -> list[Candle]:
    """Return candles sorted ascending by timestamp with OHLC filled.

    Records whose timestamp or close is non-finite are dropped.  Mapping
    records without any timestamp field take their list position instead.
    When two records share a timestamp the later one wins.  The function
    is idempotent.
    """
    by_ts: dict[int, Candle] = {}
    for position, raw in enumerate(candles):
        if isinstance(raw, Candle):
            candle = _from_candle(raw)
        else:
            candle = candle_from_record(raw, default_timestamp=position)
        if candle is None:
            continue
        by_ts[candle.timestamp] = candle

    return [by_ts[ts] for ts in sorted(by_ts)]


def closes(candles: list[Candle]) -> list[float]:
    """Close prices of already-normalized candles."""
    return [c.close for c in candles]
