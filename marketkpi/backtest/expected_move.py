"""Expected-move backtest: hit rate and time to first breach.

Both statistics replay a merged daily (spot, IV) series.  For each start
day ``i`` the expected move is ``EM_i = spot_i × IV_i × sqrt(h / 365)``
and is compared with the realized move of spot over the next ``h`` days.
Days missing spot or IV where they are needed are skipped, counting
neither as a hit nor as a miss.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from marketkpi.candles.models import MS_PER_DAY
from marketkpi.expected_move.formulas import em_abs_from_spot_iv
from marketkpi.probing import fields, first_number

TIMESTAMP_FIELDS = fields("timestamp", "ts", "time", "t")
IV_PCT_FIELDS = fields("percentValue", "closePct", "ivPct", "close", "value")
SPOT_FIELDS = fields("close", "spot", "price", "value")


@dataclass(frozen=True)
class HitRateResult:
    """Outcome of the hit-rate replay."""

    hit_rate_pct: float  # NaN when total == 0
    hits: int
    misses: int
    total: int
    horizon_days: int
    lookback_days: int


@dataclass(frozen=True)
class BreachResult:
    """Outcome of the time-to-first-breach replay."""

    avg_breach_fraction: float  # mean of step / horizon over breaching starts; NaN if none
    with_breach: int
    without_breach: int
    total: int
    horizon_days: int
    lookback_days: int

    @property
    def avg_breach_time_pct(self) -> float:
        return self.avg_breach_fraction * 100.0


# ── Series merge ─────────────────────────────────────────────────────────


def _day_series(
    records: Iterable[Mapping[str, Any]], value_fields, name: str
) -> pd.Series:
    by_day: dict[int, float] = {}
    for record in records:
        ts = first_number(record, TIMESTAMP_FIELDS)
        if ts is None:
            continue
        key = int(ts // MS_PER_DAY)
        value = first_number(record, value_fields)
        if value is not None:
            by_day[key] = float(value)
        else:
            by_day.setdefault(key, math.nan)
    return pd.Series(by_day, name=name, dtype=float)


def merge_daily_iv_and_spot(
    iv_series: Iterable[Mapping[str, Any]],
    spot_series: Iterable[Mapping[str, Any]],
) -> pd.DataFrame:
    """Outer-join IV (percent points) and spot by UTC day.

    Returns a frame indexed by days since epoch with ``iv_pct`` and
    ``spot`` columns, ascending, without days where both are missing.
    """
    iv = _day_series(iv_series, IV_PCT_FIELDS, "iv_pct")
    spot = _day_series(spot_series, SPOT_FIELDS, "spot")
    merged = pd.concat({"iv_pct": iv, "spot": spot}, axis=1, join="outer")
    merged = merged.reindex(columns=["iv_pct", "spot"]).sort_index()
    return merged.dropna(how="all")


# ── Replay helpers ───────────────────────────────────────────────────────


def _validate(horizon_days: int, lookback_days: int) -> None:
    if horizon_days < 1:
        raise ValueError(f"horizon_days must be >= 1, got {horizon_days}")
    if lookback_days < 1:
        raise ValueError(f"lookback_days must be >= 1, got {lookback_days}")


def _replay_window(
    merged: pd.DataFrame, horizon_days: int, lookback_days: int
) -> tuple[np.ndarray, np.ndarray, range]:
    """Trim to the last ``lookback + h + 1`` days and return start indices."""
    trimmed = merged.iloc[-(lookback_days + horizon_days + 1):]
    spot = trimmed["spot"].to_numpy(dtype=float)
    iv_pct = trimmed["iv_pct"].to_numpy(dtype=float)

    max_start = len(trimmed) - horizon_days
    min_start = max(0, max_start - lookback_days)
    return spot, iv_pct, range(min_start, max(min_start, max_start))


def _eligible(spot: np.ndarray, iv_pct: np.ndarray, i: int, h: int) -> bool:
    return bool(
        np.isfinite(spot[i]) and np.isfinite(iv_pct[i]) and np.isfinite(spot[i + h])
    )


# ── Statistics ───────────────────────────────────────────────────────────


def compute_hit_rate(
    iv_series: Iterable[Mapping[str, Any]],
    spot_series: Iterable[Mapping[str, Any]],
    horizon_days: int = 1,
    lookback_days: int = 30,
) -> HitRateResult:
    """Share of start days whose realized move stayed within the expected move.

    A hit is ``|spot_{i+h} - spot_i| <= EM_i``.  Raises ``ValueError`` for a
    horizon or lookback below 1.
    """
    _validate(horizon_days, lookback_days)
    merged = merge_daily_iv_and_spot(iv_series, spot_series)
    spot, iv_pct, starts = _replay_window(merged, horizon_days, lookback_days)

    hits = 0
    total = 0
    for i in starts:
        if not _eligible(spot, iv_pct, i, horizon_days):
            continue
        em = em_abs_from_spot_iv(spot[i], iv_pct[i] / 100.0, horizon_days)
        realized = abs(spot[i + horizon_days] - spot[i])
        total += 1
        if realized <= em:
            hits += 1

    return HitRateResult(
        hit_rate_pct=(hits / total) * 100.0 if total > 0 else math.nan,
        hits=hits,
        misses=total - hits,
        total=total,
        horizon_days=horizon_days,
        lookback_days=lookback_days,
    )


def compute_time_to_first_breach(
    iv_series: Iterable[Mapping[str, Any]],
    spot_series: Iterable[Mapping[str, Any]],
    horizon_days: int = 1,
    lookback_days: int = 30,
) -> BreachResult:
    """Average fraction of the horizon elapsed before spot first leaves the EM band.

    For each eligible start the walk checks days ``1..h``; the first step
    whose move strictly exceeds ``EM_i`` is the breach and contributes
    ``step / h``.  Days without spot inside the walk are stepped over.
    Only breaching starts enter the average.
    """
    _validate(horizon_days, lookback_days)
    merged = merge_daily_iv_and_spot(iv_series, spot_series)
    spot, iv_pct, starts = _replay_window(merged, horizon_days, lookback_days)

    fractions: list[float] = []
    without = 0
    for i in starts:
        if not _eligible(spot, iv_pct, i, horizon_days):
            continue
        em = em_abs_from_spot_iv(spot[i], iv_pct[i] / 100.0, horizon_days)

        breach_step = None
        for step in range(1, horizon_days + 1):
            later = spot[i + step]
            if not np.isfinite(later):
                continue
            if abs(later - spot[i]) > em:
                breach_step = step
                break

        if breach_step is None:
            without += 1
        else:
            fractions.append(breach_step / horizon_days)

    avg = float(np.mean(fractions)) if fractions else math.nan
    return BreachResult(
        avg_breach_fraction=avg,
        with_breach=len(fractions),
        without_breach=without,
        total=len(fractions) + without,
        horizon_days=horizon_days,
        lookback_days=lookback_days,
    )
