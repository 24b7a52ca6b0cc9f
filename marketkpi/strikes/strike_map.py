"""Strike-level aggregator and classifier.

Gamma-exposure and open-interest records are merged by strike inside a
window around spot, scored on a 0..1 scale and classified as support,
resistance or magnet.  The pin strike and ranked level tables are derived
from the classified buckets.
"""

from typing import Any, Iterable, Optional, Sequence

from marketkpi.candles.normalize import is_finite
from marketkpi.probing import Accessor, coerce_number, fields, first_number
from marketkpi.strikes.models import (
    BucketKind,
    GammaCenterOfMass,
    StrikeBucket,
    StrikeMapState,
    StrikeTableRow,
)

DEFAULT_WINDOW_PCT = 0.05
MIN_SCORE = 0.15
GAMMA_WEIGHT = 0.6
OI_WEIGHT = 0.4
MAGNET_WINDOW_SHARE = 0.25
MAX_LEVELS_PER_SIDE = 3
PINNED_DISTANCE = 0.0075

# ── Probing order ────────────────────────────────────────────────────────

STRIKE_FIELDS = fields("strike", "k", "strikePrice")
GAMMA_FIELDS = fields(
    "gammaAbs",
    "gamma_abs",
    "gexAbsUsd",
    "gex_abs_usd",
    "gexUsd",
    "gex_usd",
    "size",
    "abs",
)
OI_FIELDS = fields("oiAbs", "oi_abs", "abs", "value", "size", "contracts")
COM_GAMMA_FIELDS = fields(
    "gammaAbs",
    "gex_abs_usd",
    "gex_net_usd",
    "gamma",
    "gammaUsd",
    "totalGamma",
)


def record_strike(record: Any) -> Optional[float]:
    """Strike of a record; numeric strings are accepted."""
    for accessor in STRIKE_FIELDS:
        value = coerce_number(accessor(record))
        if value is not None:
            return value
    return None


def _usable_spot(spot: Optional[float]) -> Optional[float]:
    if not is_finite(spot) or spot <= 0:
        return None
    return float(spot)


# ── Aggregation ──────────────────────────────────────────────────────────


def aggregate_by_strike(
    gamma_records: Iterable[Any],
    oi_records: Iterable[Any],
    spot: Optional[float] = None,
    window_pct: float = DEFAULT_WINDOW_PCT,
) -> dict[float, tuple[float, float]]:
    """Sum |gamma| and |OI| per strike, keeping strikes within ``spot·(1±window)``.

    Without a usable spot every strike is kept.  Records with no positive
    metric value are ignored.  Strikes keep the order in which they are
    first seen, gamma records before OI records.
    """
    spot = _usable_spot(spot)
    half_width = abs(spot * window_pct) if spot is not None else None

    totals: dict[float, list[float]] = {}

    def _add(records: Iterable[Any], accessors: Sequence[Accessor], slot: int) -> None:
        for record in records:
            strike = record_strike(record)
            if strike is None:
                continue
            if spot is not None and not (spot - half_width <= strike <= spot + half_width):
                continue
            value = first_number(record, accessors)
            if value is None or abs(value) <= 0:
                continue
            totals.setdefault(strike, [0.0, 0.0])[slot] += abs(value)

    _add(gamma_records, GAMMA_FIELDS, 0)
    _add(oi_records, OI_FIELDS, 1)
    return {strike: (g, oi) for strike, (g, oi) in totals.items()}


def score_strikes(aggregated: dict[float, tuple[float, float]]) -> list[tuple[float, float]]:
    """``(strike, score)`` pairs in first-seen strike order.

    Each metric is divided by its maximum in the set (0 when the metric is
    absent) and combined as ``0.6 · gamma + 0.4 · oi``.
    """
    max_gamma = max((g for g, _ in aggregated.values()), default=0.0)
    max_oi = max((oi for _, oi in aggregated.values()), default=0.0)

    scored = []
    for strike, (g, oi) in aggregated.items():
        gamma_score = g / max_gamma if max_gamma > 0 else 0.0
        oi_score = oi / max_oi if max_oi > 0 else 0.0
        scored.append((strike, GAMMA_WEIGHT * gamma_score + OI_WEIGHT * oi_score))
    return scored


def classify_strike(
    strike: float,
    score: float,
    spot: Optional[float],
    window_pct: float = DEFAULT_WINDOW_PCT,
) -> BucketKind:
    """Support/resistance/magnet/none for one scored strike.

    Below ``MIN_SCORE`` a strike is ``"none"``.  Without spot every strike
    at or above the threshold is a ``"magnet"``.
    """
    if score < MIN_SCORE:
        return "none"
    if spot is None:
        return "magnet"
    distance = abs((strike - spot) / spot)
    if distance < abs(window_pct) * MAGNET_WINDOW_SHARE:
        return "magnet"
    return "support" if strike < spot else "resistance"


# ── Selection ────────────────────────────────────────────────────────────


def _max_by_score(buckets: list[StrikeBucket]) -> Optional[StrikeBucket]:
    best = None
    for b in buckets:
        if best is None or b.score > best.score:
            best = b
    return best


def _pick_pin(buckets: list[StrikeBucket], spot: float) -> Optional[StrikeBucket]:
    magnets = [b for b in buckets if b.kind == "magnet"]
    candidates = magnets or [b for b in buckets if b.kind in ("support", "resistance")]

    best = None
    for b in candidates:
        if best is None or b.score > best.score:
            best = b
        elif b.score == best.score and abs(b.strike - spot) < abs(best.strike - spot):
            best = b
    return best


def _table_rows(buckets: list[StrikeBucket], section: str) -> list[StrikeTableRow]:
    ranked = sorted(
        (b for b in buckets if b.kind == section),
        key=lambda b: b.score,
        reverse=True,
    )[:MAX_LEVELS_PER_SIDE]
    title = section.capitalize()
    return [
        StrikeTableRow(
            section=section,
            label=f"Main {section}" if idx == 0 else f"{title} #{idx + 1}",
            strike=b.strike,
            score=b.score,
        )
        for idx, b in enumerate(ranked)
    ]


def build_strike_map(
    gamma_records: Iterable[Any],
    oi_records: Iterable[Any],
    spot: Optional[float],
    window_pct: float = DEFAULT_WINDOW_PCT,
) -> StrikeMapState:
    """Derive the full strike map for one gamma/OI snapshot.

    No usable records give an empty state with every level ``None``.
    Without a usable spot the buckets are scored but only labelled
    ``"magnet"``/``"none"``, and no pin or main levels are chosen.
    """
    usable_spot = _usable_spot(spot)
    aggregated = aggregate_by_strike(gamma_records, oi_records, usable_spot, window_pct)
    if not aggregated:
        return StrikeMapState()

    buckets = [
        StrikeBucket(
            strike=strike,
            score=score,
            kind=classify_strike(strike, score, usable_spot, window_pct),
        )
        for strike, score in score_strikes(aggregated)
    ]

    if usable_spot is None:
        return StrikeMapState(buckets=tuple(buckets))

    pin = _pick_pin(buckets, usable_spot)
    main_support = _max_by_score([b for b in buckets if b.kind == "support"])
    main_resistance = _max_by_score([b for b in buckets if b.kind == "resistance"])

    return StrikeMapState(
        pin_strike=pin.strike if pin else None,
        pin_distance_pct=(pin.strike - usable_spot) / usable_spot if pin else None,
        main_support_strike=main_support.strike if main_support else None,
        main_resistance_strike=main_resistance.strike if main_resistance else None,
        buckets=tuple(buckets),
        table_rows=tuple(
            _table_rows(buckets, "support") + _table_rows(buckets, "resistance")
        ),
    )


# ── Gamma center of mass ─────────────────────────────────────────────────


def gamma_center_of_mass(
    gamma_records: Iterable[Any], spot: Optional[float]
) -> GammaCenterOfMass:
    """|gamma|-weighted mean strike and its distance from spot.

    Within 0.75% of spot the side is ``"pinned"``.
    """
    usable_spot = _usable_spot(spot)
    if usable_spot is None:
        return GammaCenterOfMass(k_com=None, distance_pct=None, side="unknown")

    weight_sum = 0.0
    weighted_strikes = 0.0
    for record in gamma_records:
        strike = record_strike(record)
        magnitude = first_number(record, COM_GAMMA_FIELDS)
        if strike is None or magnitude is None or abs(magnitude) <= 0:
            continue
        weight_sum += abs(magnitude)
        weighted_strikes += abs(magnitude) * strike

    if weight_sum == 0:
        return GammaCenterOfMass(k_com=None, distance_pct=None, side="unknown")

    k_com = weighted_strikes / weight_sum
    distance = (k_com - usable_spot) / usable_spot
    if abs(distance) < PINNED_DISTANCE:
        side = "pinned"
    elif distance > 0:
        side = "upside"
    else:
        side = "downside"
    return GammaCenterOfMass(k_com=k_com, distance_pct=distance, side=side)
