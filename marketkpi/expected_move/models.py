"""Expected-move data models."""

from dataclasses import dataclass
from typing import Any, Literal, Optional

PickSource = Literal["point", "state", "none"]

# How the absolute/percent move was obtained.
Derivation = Literal[
    "explicit",
    "heuristic_pct",
    "heuristic_abs",
    "object",
    "tenor_map",
    "none",
]


@dataclass(frozen=True)
class MoveEstimate:
    """Absolute and fractional expected move, with provenance."""

    absolute: Optional[float]
    percent: Optional[float]
    derivation: Derivation = "none"


NO_MOVE = MoveEstimate(absolute=None, percent=None, derivation="none")


@dataclass(frozen=True)
class ExpectedMovePick:
    """Expected move resolved for one horizon."""

    days: float
    as_of: Any
    spot: Optional[float]
    expiry_timestamp: Optional[float]
    absolute_move: Optional[float]
    percent_move: Optional[float]  # decimal, 0.05 = 5%
    annualized_implied_vol: Optional[float]  # decimal, 0.55 = 55%
    source: PickSource
    derivation: Derivation = "none"


@dataclass(frozen=True)
class ExpectedMoveRow:
    """One tenor of an expected-move curve."""

    days: float
    expiry_timestamp: Optional[float]
    absolute_move: Optional[float]
    percent_move: Optional[float]
