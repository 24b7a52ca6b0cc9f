"""Strike-map data models."""

from dataclasses import dataclass, field
from typing import Literal, Optional

BucketKind = Literal["support", "resistance", "magnet", "none"]


@dataclass(frozen=True)
class StrikeBucket:
    """One strike with its combined gamma/OI score (0..1) and classification."""

    strike: float
    score: float
    kind: BucketKind


@dataclass(frozen=True)
class StrikeTableRow:
    """A ranked support/resistance row ("Main support", "Support #2", ...)."""

    section: Literal["support", "resistance"]
    label: str
    strike: float
    score: float


@dataclass(frozen=True)
class StrikeMapState:
    """Pin, main levels and ranked tables derived from one gamma/OI snapshot."""

    pin_strike: Optional[float] = None
    pin_distance_pct: Optional[float] = None  # fraction of spot
    main_support_strike: Optional[float] = None
    main_resistance_strike: Optional[float] = None
    buckets: tuple[StrikeBucket, ...] = field(default_factory=tuple)
    table_rows: tuple[StrikeTableRow, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GammaCenterOfMass:
    """|gamma|-weighted mean strike relative to spot."""

    k_com: Optional[float]
    distance_pct: Optional[float]  # fraction of spot
    side: Literal["upside", "downside", "pinned", "unknown"]

    @property
    def has_data(self) -> bool:
        return self.k_com is not None
