"""marketkpi: analytics configuration.

Loads .env variables into a typed config object.  Only the CLI reads it;
the analytics functions take every parameter as a plain argument.
"""

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


@dataclass(frozen=True)
class AnalyticsConfig:
    """Resolved default parameters for KPI computation."""

    reference_tz: str
    annualization_days: float
    resolution_sec: int
    atr_period: int
    adx_period: int
    adx_delta_days: int
    rv_window_days: int
    bb_period_days: int
    bb_sigma: float
    strike_window_pct: float
    hit_rate_horizon_days: int
    hit_rate_lookback_days: int
    event_lookback_days: int
    log_level: str


def _number(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def load_config(env_path: str | None = None) -> AnalyticsConfig:
    """Load configuration from ``MARKETKPI_*`` environment variables.

    Raises ``ValueError`` naming the variable when a number does not parse
    or the timezone is unknown.
    """
    load_dotenv(dotenv_path=env_path)

    tz = os.environ.get("MARKETKPI_REFERENCE_TZ", "Europe/Berlin")
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Invalid value for MARKETKPI_REFERENCE_TZ: {tz!r}") from None

    return AnalyticsConfig(
        reference_tz=tz,
        annualization_days=_number("MARKETKPI_ANNUALIZATION_DAYS", "365", float),
        resolution_sec=_number("MARKETKPI_RESOLUTION_SEC", "86400", int),
        atr_period=_number("MARKETKPI_ATR_PERIOD", "14", int),
        adx_period=_number("MARKETKPI_ADX_PERIOD", "14", int),
        adx_delta_days=_number("MARKETKPI_ADX_DELTA_DAYS", "5", int),
        rv_window_days=_number("MARKETKPI_RV_WINDOW_DAYS", "20", int),
        bb_period_days=_number("MARKETKPI_BB_PERIOD_DAYS", "20", int),
        bb_sigma=_number("MARKETKPI_BB_SIGMA", "2.0", float),
        strike_window_pct=_number("MARKETKPI_STRIKE_WINDOW_PCT", "0.05", float),
        hit_rate_horizon_days=_number("MARKETKPI_HIT_RATE_HORIZON_DAYS", "1", int),
        hit_rate_lookback_days=_number("MARKETKPI_HIT_RATE_LOOKBACK_DAYS", "30", int),
        event_lookback_days=_number("MARKETKPI_EVENT_LOOKBACK_DAYS", "14", int),
        log_level=os.environ.get("MARKETKPI_LOG_LEVEL", "INFO"),
    )
