"""marketkpi: command-line entry point.

Reads already-fetched market data from JSON files, runs the analytics
core and prints the resulting KPI values as JSON.

Usage:
    python -m marketkpi.main indicators --input candles.json
    python -m marketkpi.main strike-map --gamma gex.json --oi oi.json --spot 100
    python -m marketkpi.main term-structure --input atm_iv.json
"""

import argparse
import dataclasses
import json
import logging
import math
import sys
import time
from typing import Any, Optional

from marketkpi.backtest.expected_move import compute_hit_rate, compute_time_to_first_breach
from marketkpi.candles.models import window_bars_from_days
from marketkpi.candles.normalize import normalize_candles
from marketkpi.config import AnalyticsConfig, load_config
from marketkpi.expected_move.reconcile import pick_expected_move, to_expected_move_rows
from marketkpi.indicators.bands import bollinger_width, sma_trend_quality, spot_vs_sma
from marketkpi.indicators.term_structure import term_structure_stats
from marketkpi.indicators.trend import atr_percent_last, atr_wilder_last
from marketkpi.indicators.volatility import (
    parkinson_vol_from_days,
    realized_vol_from_candles,
)
from marketkpi.kpi.summary import adx_summary, vwap_anchor_summary
from marketkpi.strikes.strike_map import build_strike_map, gamma_center_of_mass

logger = logging.getLogger("marketkpi")


# ── JSON helpers ─────────────────────────────────────────────────────────


def to_jsonable(value: Any) -> Any:
    """Dataclasses to dicts, tuples to lists, NaN/inf to ``None``."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _records(payload: Any, key: str) -> list:
    """Accept either a bare list or ``{key: [...]}``."""
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of {key}")
    return payload


# ── Commands ─────────────────────────────────────────────────────────────


def _cmd_indicators(args: argparse.Namespace, config: AnalyticsConfig) -> dict:
    candles = normalize_candles(_records(_load_json(args.input), "candles"))
    logger.info("Loaded %d candles from %s", len(candles), args.input)

    delta_bars = window_bars_from_days(config.adx_delta_days, config.resolution_sec)
    result = {
        "candles": len(candles),
        "atr": atr_wilder_last(candles, config.atr_period),
        "atr_pct": atr_percent_last(candles, config.atr_period),
        "adx": adx_summary(candles, config.adx_period, delta_bars),
        "realized_vol": realized_vol_from_candles(
            candles, config.rv_window_days, config.resolution_sec, config.annualization_days
        ),
        "parkinson_vol": parkinson_vol_from_days(
            candles, config.rv_window_days, config.resolution_sec, config.annualization_days
        ),
        "bb_width": bollinger_width(
            candles, config.bb_period_days, config.bb_sigma, resolution_sec=config.resolution_sec
        ),
        "spot_vs_sma": spot_vs_sma(candles),
        "sma_trend_quality": sma_trend_quality(candles),
    }
    for name in ("atr", "realized_vol", "parkinson_vol", "bb_width", "sma_trend_quality"):
        if result[name] is None:
            logger.warning("%s undefined: insufficient history", name)
    return result


def _cmd_vwap(args: argparse.Namespace, config: AnalyticsConfig) -> Any:
    candles = normalize_candles(_records(_load_json(args.input), "candles"))
    now_ms = args.now if args.now is not None else int(time.time() * 1000)
    logger.info("Loaded %d candles from %s", len(candles), args.input)
    return vwap_anchor_summary(
        candles,
        now_ms,
        adx_value=args.adx,
        tz=config.reference_tz,
        event_lookback_days=config.event_lookback_days,
    )


def _cmd_expected_move(args: argparse.Namespace, config: AnalyticsConfig) -> dict:
    state = _load_json(args.input)
    if not isinstance(state, dict):
        raise ValueError("Expected-move input must be a JSON object")
    pick = pick_expected_move(state, args.days)
    if pick.derivation.startswith("heuristic"):
        logger.info("Expected move for %sD interpreted by heuristic (%s)", args.days, pick.derivation)
    return {"pick": pick, "rows": to_expected_move_rows(state)}


def _cmd_hit_rate(args: argparse.Namespace, config: AnalyticsConfig) -> dict:
    iv = _records(_load_json(args.iv), "points")
    spot = _records(_load_json(args.spot), "candles")
    horizon = args.horizon if args.horizon is not None else config.hit_rate_horizon_days
    lookback = args.lookback if args.lookback is not None else config.hit_rate_lookback_days
    return {
        "hit_rate": compute_hit_rate(iv, spot, horizon, lookback),
        "first_breach": compute_time_to_first_breach(iv, spot, horizon, lookback),
    }


def _cmd_term_structure(args: argparse.Namespace, config: AnalyticsConfig) -> Any:
    points = _records(_load_json(args.input), "points")
    stats = term_structure_stats(points)
    logger.info("Term structure from %d of %d points: %s", stats.n, len(points), stats.label)
    return stats


def _cmd_strike_map(args: argparse.Namespace, config: AnalyticsConfig) -> dict:
    gamma = _records(_load_json(args.gamma), "rows") if args.gamma else []
    oi = _records(_load_json(args.oi), "rows") if args.oi else []
    window = args.window if args.window is not None else config.strike_window_pct
    logger.info("Strike map from %d gamma and %d OI records", len(gamma), len(oi))
    return {
        "strike_map": build_strike_map(gamma, oi, args.spot, window),
        "gamma_center_of_mass": gamma_center_of_mass(gamma, args.spot),
    }


_COMMANDS = {
    "indicators": _cmd_indicators,
    "vwap": _cmd_vwap,
    "expected-move": _cmd_expected_move,
    "hit-rate": _cmd_hit_rate,
    "strike-map": _cmd_strike_map,
    "term-structure": _cmd_term_structure,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Market KPI analytics")
    parser.add_argument("--env", help="Path to a .env file with MARKETKPI_* settings")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("indicators", help="ATR, ADX, volatility and moving-average KPIs from candles")
    p.add_argument("--input", required=True)

    p = sub.add_parser("vwap", help="Session and anchored VWAPs")
    p.add_argument("--input", required=True)
    p.add_argument("--now", type=int, help="Reference time in ms epoch (default: now)")
    p.add_argument("--adx", type=float, help="ADX value to tag the stretch with")

    p = sub.add_parser("expected-move", help="Reconcile an expected-move state")
    p.add_argument("--input", required=True)
    p.add_argument("--days", type=float, default=1)

    p = sub.add_parser("hit-rate", help="Expected-move hit rate and first breach")
    p.add_argument("--iv", required=True)
    p.add_argument("--spot", required=True)
    p.add_argument("--horizon", type=int)
    p.add_argument("--lookback", type=int)

    p = sub.add_parser("strike-map", help="Gamma/OI support and resistance")
    p.add_argument("--gamma")
    p.add_argument("--oi")
    p.add_argument("--spot", type=float)
    p.add_argument("--window", type=float)

    p = sub.add_parser("term-structure", help="ATM IV term-structure slope and label")
    p.add_argument("--input", required=True)

    return parser


def run_cli(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, run one command and print its JSON result."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.env)
    except ValueError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Configuration error: %s", exc)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        result = _COMMANDS[args.command](args, config)
    except (ValueError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1

    json.dump(to_jsonable(result), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(run_cli())
