"""Field probing for producer records with inconsistent key names.

Each lookup is an ordered tuple of accessor functions; the first accessor
that yields a usable value wins.  Keeping the order in data makes it easy
to review and test.
"""

from typing import Any, Callable, Mapping, Optional, Sequence

from marketkpi.candles.normalize import is_finite

Accessor = Callable[[Any], Any]


def field(name: str) -> Accessor:
    """Accessor reading *name* from a mapping (``None`` for non-mappings)."""

    def _get(record: Any) -> Any:
        if isinstance(record, Mapping):
            return record.get(name)
        return None

    _get.__name__ = f"field_{name}"
    return _get


def fields(*names: str) -> tuple[Accessor, ...]:
    return tuple(field(n) for n in names)


def first_number(record: Any, accessors: Sequence[Accessor]) -> Optional[float]:
    """First finite number produced by *accessors* on *record*."""
    if record is None:
        return None
    for accessor in accessors:
        value = accessor(record)
        if is_finite(value):
            return value
    return None


def first_text(record: Any, accessors: Sequence[Accessor]) -> Optional[str]:
    """First non-empty string produced by *accessors* on *record*."""
    if record is None:
        return None
    for accessor in accessors:
        value = accessor(record)
        if isinstance(value, str) and value:
            return value
    return None


def coerce_number(value: Any) -> Optional[float]:
    """Finite float from a number or numeric string, else ``None``."""
    if is_finite(value):
        return float(value)
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if is_finite(parsed) else None
    return None
