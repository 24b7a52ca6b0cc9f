"""Expected-move formulas: spot × IV × sqrt(days / 365) and its inverses."""

import math
import re
from typing import Optional

from marketkpi.candles.normalize import is_finite

DAYS_IN_YEAR = 365


def sqrt_year_frac(days: float) -> float:
    return math.sqrt(max(0.0, days) / DAYS_IN_YEAR)


def em_abs_from_spot_iv(spot: float, iv_ann: float, days: float) -> float:
    """Absolute (price-unit) expected move."""
    return spot * iv_ann * sqrt_year_frac(days)


def em_pct_from_iv(iv_ann: float, days: float) -> float:
    """Expected move as a fraction of spot."""
    return iv_ann * sqrt_year_frac(days)


def iv_ann_from_em_abs(em_abs: float, spot: float, days: float) -> float:
    return em_abs / (spot * sqrt_year_frac(days))


def iv_ann_from_em_pct(em_pct: float, days: float) -> float:
    return em_pct / sqrt_year_frac(days)


def normalize_iv(iv: Optional[float]) -> Optional[float]:
    """Accept IV in percent points (45.8) or decimal (0.458); return decimal."""
    if not is_finite(iv):
        return None
    if iv > 2:
        return iv / 100.0
    return float(iv)


_TENOR_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([DWM])$", re.IGNORECASE)
_TENOR_UNIT_DAYS = {"D": 1, "W": 7, "M": 30}


def parse_tenor_days(label: str) -> Optional[int]:
    """``"5D"`` → 5, ``"1W"`` → 7, ``"1M"`` → 30; anything else → ``None``."""
    m = _TENOR_RE.match(label.strip())
    if not m:
        return None
    n = float(m.group(1))
    return int(math.floor(n * _TENOR_UNIT_DAYS[m.group(2).upper()] + 0.5))
