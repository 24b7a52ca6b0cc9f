"""ATM implied-vol term structure: regression slope, premium and label."""

from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping, Optional, Sequence

import numpy as np

from marketkpi.expected_move.formulas import normalize_iv
from marketkpi.indicators.volatility import DAYS_IN_YEAR
from marketkpi.probing import fields, first_number

TermStructureLabel = Literal["contango", "backwardation", "flat", "insufficient"]

# ≈ 0.5 vol points per year
TERM_SLOPE_TOLERANCE = 0.005

DTE_FIELDS = fields("dte", "days", "tenorDays", "d")
TTM_FIELDS = fields("ttmY", "ttm_years", "ttm")
TERM_IV_FIELDS = fields("iv", "atmIv", "markIv", "impliedVol")


@dataclass(frozen=True)
class TermStructureStats:
    n: int
    slope_per_year: Optional[float]
    term_premium: Optional[float]
    label: TermStructureLabel


def linreg_slope(ttm_years: Sequence[float], ivs: Sequence[float]) -> Optional[float]:
    """OLS slope of IV against time to maturity (IV per year).

    Uses the common prefix of both sequences; ``None`` with fewer than
    two points or when every maturity is identical.
    """
    n = min(len(ttm_years), len(ivs))
    if n < 2:
        return None
    x = np.asarray(ttm_years[:n], dtype=float)
    y = np.asarray(ivs[:n], dtype=float)
    dx = x - x.mean()
    den = float(np.dot(dx, dx))
    if den == 0:
        return None
    return float(np.dot(dx, y - y.mean())) / den


def classify_term_structure(
    slope_per_year: Optional[float],
    term_premium: Optional[float],
    eps: float = TERM_SLOPE_TOLERANCE,
) -> TermStructureLabel:
    if slope_per_year is None or term_premium is None:
        return "insufficient"
    if slope_per_year > eps and term_premium > 0:
        return "contango"
    if slope_per_year < -eps and term_premium < 0:
        return "backwardation"
    return "flat"


def _term_point(record: Any) -> Optional[tuple[float, float, float]]:
    iv = normalize_iv(first_number(record, TERM_IV_FIELDS))
    dte = first_number(record, DTE_FIELDS)
    ttm = first_number(record, TTM_FIELDS)
    if ttm is None and dte is not None:
        ttm = dte / DAYS_IN_YEAR
    if iv is None or ttm is None or ttm <= 0:
        return None
    return (dte if dte is not None else ttm * DAYS_IN_YEAR), ttm, iv


def term_structure_stats(points: Iterable[Mapping[str, Any]]) -> TermStructureStats:
    """Slope, premium (longest minus shortest IV) and label of a term curve.

    Points need a finite IV (decimal or percent points) and a positive time
    to maturity, given as ``ttmY`` or derived from days to expiry.  They
    are ordered by days to expiry before the premium is taken.
    """
    usable = sorted(filter(None, (_term_point(p) for p in points)), key=lambda t: t[0])
    n = len(usable)
    if n < 2:
        return TermStructureStats(n, None, None, "insufficient")

    slope = linreg_slope([t[1] for t in usable], [t[2] for t in usable])
    premium = usable[-1][2] - usable[0][2]
    return TermStructureStats(n, slope, premium, classify_term_structure(slope, premium))
