import json

import pytest

import run
from looproute import config
from looproute.geo import Coordinate
from looproute.models import ErrorKind, SearchResult, Stop

ROUTE = [
    Stop("start:34.0,-118.0", "Home", "Home", Coordinate(34.0, -118.0)),
    Stop("b", "Taco Bell B", "2 B St", Coordinate(34.05, -118.0)),
]


def test_build_search_config_converts_miles(tmp_path):
    args = run.parse_args(
        [
            "--start-lat", "34.0",
            "--start-lon", "-118.0",
            "--min-miles", "20",
            "--max-miles", "25",
            "--max-stops", "9",
            "--max-calls", "7",
            "--config", str(tmp_path / "missing.json"),
        ]
    )
    cfg = run.build_search_config(args)
    assert cfg.min_distance_m == pytest.approx(20 * config.METERS_PER_MILE)
    assert cfg.max_distance_m == pytest.approx(25 * config.METERS_PER_MILE)
    assert cfg.max_stops == 9
    assert cfg.max_oracle_calls == 7
    assert cfg.min_stops == config.MIN_STOPS


def test_start_is_required():
    with pytest.raises(SystemExit):
        run.parse_args(["--start-lat", "34.0"])


def test_main_without_api_key_fails(monkeypatch, capsys):
    monkeypatch.setattr(run, "load_env", lambda: None)
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    assert run.main(["--start-lat", "34.0", "--start-lon", "-118.0"]) == 1
    assert "GOOGLE_MAPS_API_KEY" in capsys.readouterr().err


def test_main_writes_outputs(monkeypatch, tmp_path):
    captured = {}

    def fake_find_optimal_route(start, lookup, oracle, cfg=None, on_progress=None, rng=None, progress_path=None):
        captured["start"] = start
        captured["progress_path"] = progress_path
        return SearchResult(success=True, route=ROUTE, distance_m=50000.0, verified=True, oracle_calls_used=3)

    monkeypatch.setattr(run, "load_env", lambda: None)
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "dummy")
    monkeypatch.setattr(run, "find_optimal_route", fake_find_optimal_route)

    out_dir = tmp_path / "out"
    code = run.main(
        [
            "--start-lat", "34.0",
            "--start-lon", "-118.0",
            "--start-name", "Home",
            "--seed", "3",
            "--config", str(tmp_path / "missing.json"),
            "--out", str(out_dir),
        ]
    )

    assert code == 0
    assert captured["start"].location == Coordinate(34.0, -118.0)
    assert captured["progress_path"] == str(out_dir / "progress.json")
    result = json.loads((out_dir / "result.json").read_text(encoding="utf-8"))
    assert result["success"] is True
    assert result["maps_url"].startswith("https://www.google.com/maps/dir/")
    assert result["requests"] == {"network": {}, "cache_hits": {}}
    assert (out_dir / "summary.txt").exists()
    assert (out_dir / "route.csv").exists()


def test_main_returns_1_on_failed_search(monkeypatch, tmp_path):
    monkeypatch.setattr(run, "load_env", lambda: None)
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "dummy")
    monkeypatch.setattr(
        run,
        "find_optimal_route",
        lambda *args, **kwargs: SearchResult.failure(ErrorKind.INSUFFICIENT_CANDIDATES, "Found 2 stops"),
    )
    code = run.main(
        [
            "--start-lat", "34.0",
            "--start-lon", "-118.0",
            "--config", str(tmp_path / "missing.json"),
            "--out", str(tmp_path / "out"),
        ]
    )
    assert code == 1
    result = json.loads((tmp_path / "out" / "result.json").read_text(encoding="utf-8"))
    assert result["error_kind"] == "InsufficientCandidates"
    assert result["maps_url"] is None
