"""Expected-move reconciler.

Producers describe expected moves inconsistently: per-tenor ``points``
with varying day-count keys, a top-level ``em`` that may be a number, an
object, a tenor map (``{"1W": ...}``) or a list, and IV in percent or
decimal form.  ``pick_expected_move`` resolves all of that into one
:class:`ExpectedMovePick` for a target horizon.
"""

from typing import Any, Mapping, Optional, Sequence

from marketkpi.candles.normalize import is_finite
from marketkpi.expected_move.formulas import (
    iv_ann_from_em_abs,
    iv_ann_from_em_pct,
    normalize_iv,
    parse_tenor_days,
)
from marketkpi.expected_move.models import (
    NO_MOVE,
    ExpectedMovePick,
    ExpectedMoveRow,
    MoveEstimate,
)
from marketkpi.probing import fields, first_number, first_text

# ── Probing order ────────────────────────────────────────────────────────

DAY_FIELDS = fields("days", "horizonDays", "tenorDays", "d", "tDays", "dte")
TENOR_LABEL_FIELDS = fields("tenor", "label", "term", "name")
SPOT_FIELDS = fields("indexPrice", "spot", "price")
EXPIRY_FIELDS = fields(
    "expiryTs", "expirationTs", "expiration_timestamp", "expiry", "expiration"
)
ABS_FIELDS = fields("abs", "emAbs", "expectedMoveAbs", "expectedMoveUsd", "moveUsd")
PCT_FIELDS = fields("pct", "emPct", "expectedMovePct", "movePct")
# Objects nested under ``em`` use a few extra spellings.
OBJECT_ABS_FIELDS = ABS_FIELDS + fields("moveAbs", "usd")
OBJECT_PCT_FIELDS = PCT_FIELDS + fields("pctMove")
OBJECT_VALUE_FIELDS = fields("value", "em", "move", "expectedMove")
IV_FIELDS = fields(
    "ivAnnDec",
    "ivAnn",
    "iv",
    "atmIv",
    "atm_iv",
    "markIv",
    "mark_iv",
    "atmMarkIv",
    "atm_mark_iv",
)

# Heuristic threshold for a bare ``em`` number.
PCT_HEURISTIC_MIN_SPOT = 20.0
PCT_HEURISTIC_MAX_VALUE = 3.0


# ── Point selection ──────────────────────────────────────────────────────


def point_days(point: Any) -> Optional[float]:
    """Day count of a point, from a numeric field or a tenor label."""
    d = first_number(point, DAY_FIELDS)
    if d is not None:
        return d
    label = first_text(point, TENOR_LABEL_FIELDS)
    if label:
        return parse_tenor_days(label)
    return None


def pick_closest_point(points: Sequence[Any], days: float) -> Optional[Any]:
    """Point whose day count equals *days*, else the nearest one.

    Among equally near points the first one wins.
    """
    for p in points:
        if point_days(p) == days:
            return p

    best = None
    best_dist = float("inf")
    for p in points:
        d = point_days(p)
        if d is None:
            continue
        dist = abs(d - days)
        if dist < best_dist:
            best_dist = dist
            best = p
    return best


# ── Move interpretation ──────────────────────────────────────────────────


def interpret_ambiguous_move(value: float, spot: Optional[float]) -> MoveEstimate:
    """Classify a bare expected-move number as a fraction or a price amount.

    With ``spot > 20`` a value of at most 3 is read as a fraction of spot
    (0.06 means 6%).  Anything else is taken as an absolute amount.  This
    is a guess; callers can see which branch fired via ``derivation``.
    """
    if not is_finite(value):
        return NO_MOVE
    if spot is not None and spot > PCT_HEURISTIC_MIN_SPOT and value <= PCT_HEURISTIC_MAX_VALUE:
        return MoveEstimate(absolute=spot * value, percent=value, derivation="heuristic_pct")
    pct = value / spot if spot is not None and spot > 0 else None
    return MoveEstimate(absolute=value, percent=pct, derivation="heuristic_abs")


def _interpret_object(obj: Mapping[str, Any], spot: Optional[float]) -> MoveEstimate:
    abs_ = first_number(obj, OBJECT_ABS_FIELDS)
    pct = first_number(obj, OBJECT_PCT_FIELDS)

    if abs_ is not None or pct is not None:
        if abs_ is None and spot is not None:
            abs_ = spot * pct
        if pct is None and spot is not None and spot > 0:
            pct = abs_ / spot
        return MoveEstimate(absolute=abs_, percent=pct, derivation="object")

    v = first_number(obj, OBJECT_VALUE_FIELDS)
    if v is not None:
        return interpret_ambiguous_move(v, spot)
    return NO_MOVE


def _pick_from_tenor_map(
    em_map: Mapping[str, Any], days: float, spot: Optional[float]
) -> MoveEstimate:
    entries = []
    for key, value in em_map.items():
        d = parse_tenor_days(key) if isinstance(key, str) else None
        if d is not None:
            entries.append((d, value))
    if not entries:
        return NO_MOVE

    best_days, best_value = entries[0]
    best_dist = abs(best_days - days)
    for d, value in entries:
        dist = abs(d - days)
        if dist < best_dist:
            best_dist = dist
            best_value = value

    if is_finite(best_value):
        move = interpret_ambiguous_move(best_value, spot)
    elif isinstance(best_value, Mapping):
        move = _interpret_object(best_value, spot)
    else:
        return NO_MOVE
    if move.derivation == "object":
        return MoveEstimate(move.absolute, move.percent, "tenor_map")
    return move


def interpret_em(em: Any, days: float, spot: Optional[float]) -> MoveEstimate:
    """Interpret an ``em`` value of any supported shape."""
    if is_finite(em):
        return interpret_ambiguous_move(em, spot)

    if isinstance(em, (list, tuple)):
        p = pick_closest_point(em, days)
        if p is None:
            return NO_MOVE
        abs0 = first_number(p, ABS_FIELDS)
        pct0 = first_number(p, PCT_FIELDS)
        spot2 = first_number(p, SPOT_FIELDS)
        if spot2 is None:
            spot2 = spot
        nested = interpret_em(p.get("em"), days, spot2) if isinstance(p, Mapping) else NO_MOVE
        derivation = "explicit" if abs0 is not None or pct0 is not None else nested.derivation
        return MoveEstimate(
            absolute=abs0 if abs0 is not None else nested.absolute,
            percent=pct0 if pct0 is not None else nested.percent,
            derivation=derivation,
        )

    if isinstance(em, Mapping):
        picked = _pick_from_tenor_map(em, days, spot)
        if picked.absolute is not None or picked.percent is not None:
            return picked
        return _interpret_object(em, spot)

    return NO_MOVE


def _resolve_move(point: Any, em: Any, days: float, spot: Optional[float]) -> MoveEstimate:
    """Explicit abs/pct fields first, then ``em``; backfill the other from spot."""
    abs0 = first_number(point, ABS_FIELDS)
    pct0 = first_number(point, PCT_FIELDS)
    from_em = interpret_em(em, days, spot)

    abs_ = abs0 if abs0 is not None else from_em.absolute
    pct = pct0 if pct0 is not None else from_em.percent
    derivation = "explicit" if abs0 is not None or pct0 is not None else from_em.derivation

    if abs_ is None and pct is not None and spot is not None:
        abs_ = spot * pct
    if pct is None and abs_ is not None and spot is not None and spot > 0:
        pct = abs_ / spot
    return MoveEstimate(absolute=abs_, percent=pct, derivation=derivation)


def _get(record: Any, key: str) -> Any:
    return record.get(key) if isinstance(record, Mapping) else None


# ── Public API ───────────────────────────────────────────────────────────


def pick_expected_move(
    state: Optional[Mapping[str, Any]], days: float
) -> ExpectedMovePick:
    """Resolve the expected move for a *days* horizon.

    Priority:
        1. matching or closest ``points[]`` entry
        2. top-level ``em`` and spot fields of *state*
        3. IV inferred from the percent move, then the absolute move,
           when no IV field exists
    """
    state = state or {}
    points = state.get("points")
    points = points if isinstance(points, (list, tuple)) else []
    p = pick_closest_point(points, days)

    spot = first_number(p, SPOT_FIELDS)
    if spot is None:
        spot = first_number(state, SPOT_FIELDS)

    expiry = first_number(p, EXPIRY_FIELDS)

    em = _get(p, "em")
    if em is None:
        em = state.get("em")
    move = _resolve_move(p, em, days, spot)

    iv = normalize_iv(first_number(p, IV_FIELDS))
    if iv is None:
        iv = normalize_iv(first_number(state, IV_FIELDS))
    if iv is None and move.percent is not None and days > 0:
        iv = iv_ann_from_em_pct(move.percent, days)
    if iv is None and move.absolute is not None and spot is not None and spot > 0 and days > 0:
        iv = iv_ann_from_em_abs(move.absolute, spot, days)

    if p is not None:
        source = "point"
    elif state.get("em") is not None:
        source = "state"
    else:
        source = "none"

    return ExpectedMovePick(
        days=days,
        as_of=state.get("asOf"),
        spot=spot,
        expiry_timestamp=expiry,
        absolute_move=move.absolute,
        percent_move=move.percent,
        annualized_implied_vol=iv,
        source=source,
        derivation=move.derivation,
    )


def to_expected_move_rows(state: Optional[Mapping[str, Any]]) -> list[ExpectedMoveRow]:
    """Normalize a state to one row per tenor, sorted by days.

    Pre-built ``rows`` are passed through; otherwise every ``points`` entry
    with a resolvable day count becomes a row.
    """
    state = state or {}
    rows = state.get("rows")
    if isinstance(rows, (list, tuple)) and rows:
        out = [
            ExpectedMoveRow(
                days=_get(r, "days"),
                expiry_timestamp=first_number(r, EXPIRY_FIELDS),
                absolute_move=first_number(r, ABS_FIELDS),
                percent_move=first_number(r, PCT_FIELDS),
            )
            for r in rows
            if is_finite(_get(r, "days"))
        ]
        return sorted(out, key=lambda r: r.days)

    points = state.get("points")
    if not isinstance(points, (list, tuple)):
        return []

    out = []
    for p in points:
        d = point_days(p)
        if d is None:
            continue
        spot = first_number(p, SPOT_FIELDS)
        if spot is None:
            spot = first_number(state, SPOT_FIELDS)
        move = _resolve_move(p, _get(p, "em"), d, spot)
        out.append(
            ExpectedMoveRow(
                days=d,
                expiry_timestamp=first_number(p, EXPIRY_FIELDS),
                absolute_move=move.absolute,
                percent_move=move.percent,
            )
        )
    return sorted(out, key=lambda r: r.days)
