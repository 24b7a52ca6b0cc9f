"""Volatility estimators and vol-term helpers.

Close-to-close realized volatility and Parkinson high/low volatility, both
returned as annualized decimals (0.40 means 40%).  ``None`` means there was
not enough usable history in the window.
"""

import math
from datetime import datetime
from typing import Iterable, Optional, Sequence, Union

import numpy as np

from marketkpi.candles.models import bars_per_year, window_bars_from_days
from marketkpi.candles.normalize import CandleLike, closes, is_finite, normalize_candles

DAYS_IN_YEAR = 365

_PARKINSON_K = 1.0 / (4.0 * math.log(2.0))


# ── Realized volatility ──────────────────────────────────────────────────


def realized_vol_from_closes(
    close_prices: Sequence[float],
    window_bars: int,
    periods_per_year: float,
) -> Optional[float]:
    """Annualized close-to-close volatility over the last *window_bars* returns.

    Needs ``window_bars + 1`` closes.  Non-positive or non-finite closes
    break the return they participate in; at least 2 log returns must
    survive.  Uses the sample standard deviation (``n - 1``).
    """
    if window_bars < 1 or len(close_prices) < window_bars + 1:
        return None

    tail = close_prices[-(window_bars + 1):]
    rets = [
        math.log(cur / prev)
        for prev, cur in zip(tail[:-1], tail[1:])
        if is_finite(prev) and is_finite(cur) and prev > 0 and cur > 0
    ]
    if len(rets) < 2:
        return None

    sd = float(np.std(np.asarray(rets, dtype=float), ddof=1))
    return sd * math.sqrt(max(periods_per_year, 1.0))


def realized_vol_from_candles(
    candles: Iterable[CandleLike],
    window_days: float,
    resolution_sec: float = 86_400,
    annualization_days: float = DAYS_IN_YEAR,
) -> Optional[float]:
    data = normalize_candles(candles)
    return realized_vol_from_closes(
        closes(data),
        window_bars_from_days(window_days, resolution_sec),
        bars_per_year(annualization_days, resolution_sec),
    )


# ── Parkinson ────────────────────────────────────────────────────────────


def parkinson_vol_from_candles(
    candles: Iterable[CandleLike],
    window_bars: int,
    periods_per_year: float,
) -> Optional[float]:
    """Parkinson volatility over the trailing *window_bars* bars.

        Var_bar = (1 / (4 ln 2)) × mean(ln(H/L)²)
        σ_ann   = sqrt(Var_bar × periods_per_year)

    Bars with a non-positive high or low are skipped; fewer than 2 usable
    bars (or fewer candles than the window) gives ``None``.
    """
    data = normalize_candles(candles)
    if window_bars < 1 or len(data) < window_bars:
        return None

    tail = data[-window_bars:]
    hl = np.array(
        [(c.high, c.low) for c in tail if c.high > 0 and c.low > 0],
        dtype=float,
    )
    if len(hl) < 2:
        return None

    x = np.log(hl[:, 0] / hl[:, 1])
    x = x[np.isfinite(x)]
    if len(x) < 2:
        return None

    var_per_bar = _PARKINSON_K * float(np.mean(x * x))
    ann_var = var_per_bar * max(1.0, periods_per_year)
    return math.sqrt(max(0.0, ann_var))


def parkinson_vol_from_days(
    candles: Iterable[CandleLike],
    window_days: float,
    resolution_sec: float = 86_400,
    annualization_days: float = DAYS_IN_YEAR,
) -> Optional[float]:
    return parkinson_vol_from_candles(
        candles,
        window_bars_from_days(window_days, resolution_sec),
        bars_per_year(annualization_days, resolution_sec),
    )


# ── Term helpers ─────────────────────────────────────────────────────────


def to_years(days: float, base: float = DAYS_IN_YEAR) -> float:
    return days / base


Instant = Union[int, float, str, datetime]


def _to_ms(value: Instant) -> float:
    if isinstance(value, datetime):
        return value.timestamp() * 1000.0
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000.0
        except ValueError:
            return math.nan
    return float(value)


def years_between(as_of: Instant, expiry: Instant, base: float = DAYS_IN_YEAR) -> float:
    """Year fraction from *as_of* to *expiry*, floored at 0 (NaN if unparseable).

    Numbers are ms epoch; strings are ISO-8601.
    """
    a = _to_ms(as_of)
    b = _to_ms(expiry)
    if not (math.isfinite(a) and math.isfinite(b)):
        return math.nan
    ms_in_year = base * 24 * 60 * 60 * 1000
    return max(0.0, (b - a) / ms_in_year)


def variance_interp_iv(
    points: Iterable[tuple[float, float]], t_target: float
) -> Optional[float]:
    """Interpolate annualized IV at *t_target* years in total-variance space.

    *points* are ``(t_years, iv)`` pairs.  Total variance ``V = iv² · t`` is
    interpolated linearly between the bracketing tenors; targets outside the
    curve clamp to the nearest edge IV.
    """
    pts = sorted(
        (t, iv)
        for t, iv in points
        if is_finite(t) and t > 0 and is_finite(iv) and iv >= 0
    )
    if not pts or not is_finite(t_target) or t_target <= 0:
        return None

    if t_target <= pts[0][0]:
        return pts[0][1]
    if t_target >= pts[-1][0]:
        return pts[-1][1]

    for (ta, iva), (tb, ivb) in zip(pts[:-1], pts[1:]):
        if ta <= t_target <= tb:
            va = iva * iva * ta
            vb = ivb * ivb * tb
            w = (t_target - ta) / (tb - ta)
            iv = math.sqrt((va + w * (vb - va)) / t_target)
            return iv if math.isfinite(iv) else None
    return None


def period_from_annual(annual_sigma: float, t_years: float) -> float:
    return annual_sigma * math.sqrt(t_years)


def annual_from_period(period_sigma: float, t_years: float) -> float:
    if not is_finite(t_years) or t_years <= 0:
        return math.nan
    return period_sigma / math.sqrt(t_years)


def safe_ratio(num: Optional[float], den: Optional[float]) -> Optional[float]:
    """``num / den`` or ``None`` when either side is missing or den is 0."""
    if not is_finite(num) or not is_finite(den) or den == 0:
        return None
    return num / den


def rv_em_factor(rv_ann: Optional[float], iv_ann: Optional[float]) -> Optional[float]:
    """Realized over implied vol on the same annualized basis."""
    return safe_ratio(rv_ann, iv_ann)
