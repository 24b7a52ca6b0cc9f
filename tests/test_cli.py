"""Tests for the marketkpi command-line entry point."""

import json
import math

import pytest

from marketkpi.main import run_cli, to_jsonable
from marketkpi.strikes.models import StrikeBucket

DAY_MS = 86_400_000


@pytest.fixture
def env_args(tmp_path):
    return ["--env", str(tmp_path / "missing.env")]


def _write(tmp_path, name, payload):
    path = tmp_path / name
    path.write_text(json.dumps(payload))
    return str(path)


def _output(capsys):
    return json.loads(capsys.readouterr().out)


class TestToJsonable:
    def test_dataclass_and_nan(self):
        out = to_jsonable({"b": StrikeBucket(100.0, 0.5, "magnet"), "x": math.nan})
        assert out == {"b": {"strike": 100.0, "score": 0.5, "kind": "magnet"}, "x": None}

    def test_tuples_become_lists(self):
        assert to_jsonable((1, (2, 3))) == [1, [2, 3]]


class TestRunCli:
    def test_indicators(self, tmp_path, capsys, env_args):
        candles = [
            {"ts": i * DAY_MS, "h": 101.0 + i, "l": 99.0 + i, "c": 100.0 + i}
            for i in range(40)
        ]
        path = _write(tmp_path, "candles.json", {"candles": candles})
        assert run_cli(env_args + ["indicators", "--input", path]) == 0
        out = _output(capsys)
        assert out["candles"] == 40
        assert out["atr"] == pytest.approx(2.0)
        assert out["adx"]["adx"] is not None
        assert out["realized_vol"] is not None
        assert out["bb_width"]["width"] > 0
        assert out["spot_vs_sma"][0]["tenor"] == 20
        assert out["spot_vs_sma"][0]["slope"] == "up"
        assert out["sma_trend_quality"] is None

    def test_strike_map(self, tmp_path, capsys, env_args):
        gamma = _write(tmp_path, "gamma.json", [{"strike": 97, "gammaAbs": 10.0}])
        code = run_cli(env_args + ["strike-map", "--gamma", gamma, "--spot", "100"])
        assert code == 0
        out = _output(capsys)
        assert out["strike_map"]["main_support_strike"] == 97.0
        assert out["strike_map"]["table_rows"][0]["label"] == "Main support"
        assert out["gamma_center_of_mass"]["side"] == "downside"

    def test_term_structure(self, tmp_path, capsys, env_args):
        points = [{"dte": 7, "iv": 0.5}, {"dte": 30, "iv": 0.6}]
        path = _write(tmp_path, "atm.json", {"points": points})
        assert run_cli(env_args + ["term-structure", "--input", path]) == 0
        out = _output(capsys)
        assert out["n"] == 2
        assert out["label"] == "contango"

    def test_expected_move(self, tmp_path, capsys, env_args):
        path = _write(tmp_path, "em.json", {"spot": 100.0, "points": [{"days": 7, "emAbs": 5.0}]})
        assert run_cli(env_args + ["expected-move", "--input", path, "--days", "7"]) == 0
        out = _output(capsys)
        assert out["pick"]["absolute_move"] == 5.0
        assert out["pick"]["source"] == "point"
        assert out["rows"][0]["days"] == 7

    def test_hit_rate_with_empty_history(self, tmp_path, capsys, env_args):
        iv = _write(tmp_path, "iv.json", [])
        spot = _write(tmp_path, "spot.json", [])
        assert run_cli(env_args + ["hit-rate", "--iv", iv, "--spot", spot]) == 0
        out = _output(capsys)
        assert out["hit_rate"]["total"] == 0
        assert out["hit_rate"]["hit_rate_pct"] is None

    def test_invalid_horizon_fails(self, tmp_path, env_args):
        iv = _write(tmp_path, "iv.json", [])
        spot = _write(tmp_path, "spot.json", [])
        code = run_cli(env_args + ["hit-rate", "--iv", iv, "--spot", spot, "--horizon", "0"])
        assert code == 1

    def test_missing_file_fails(self, tmp_path, env_args):
        code = run_cli(env_args + ["indicators", "--input", str(tmp_path / "nope.json")])
        assert code == 1

    def test_config_error(self, tmp_path, monkeypatch, env_args):
        monkeypatch.setenv("MARKETKPI_ATR_PERIOD", "x")
        path = _write(tmp_path, "candles.json", [])
        assert run_cli(env_args + ["indicators", "--input", path]) == 2
