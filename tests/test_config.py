import json

import pytest

from looproute import config
from looproute.config import SearchConfig, load_search_config


def test_defaults_are_valid():
    cfg = SearchConfig()
    cfg.validate()
    assert cfg.target_distance_m == pytest.approx((48280.0 + 54717.0) / 2)
    assert cfg.search_radius_m == pytest.approx(15 * config.METERS_PER_MILE)
    assert list(cfg.stop_counts()) == [8, 9, 10]


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_distance_m": 60000.0},
        {"min_stops": 11},
        {"max_oracle_calls": 0},
        {"search_radius": -1.0},
        {"greedy_pick_probability": 1.5},
        {"spacing_weight": -0.1},
        {"brand_names": ()},
        {"same_place_radius_m": -1.0},
    ],
)
def test_validate_rejects_bad_values(overrides):
    with pytest.raises(ValueError):
        SearchConfig(**overrides).validate()


def test_load_search_config_missing_file(tmp_path):
    assert load_search_config(str(tmp_path / "nope.json")) is None


def test_load_search_config_applies_overrides(tmp_path):
    path = tmp_path / "search_config.json"
    path.write_text(
        json.dumps(
            {
                "min_distance_miles": 10,
                "max_distance_miles": 12,
                "max_stops": 12,
                "brand_names": ["Taco Bell"],
                "allow_unverified_fallback": False,
            }
        ),
        encoding="utf-8",
    )
    cfg = load_search_config(str(path))
    assert cfg.min_distance_m == pytest.approx(10 * config.METERS_PER_MILE)
    assert cfg.max_distance_m == pytest.approx(12 * config.METERS_PER_MILE)
    assert cfg.max_stops == 12
    assert cfg.brand_names == ("taco bell",)
    assert cfg.allow_unverified_fallback is False
    assert cfg.min_stops == config.MIN_STOPS


def test_load_search_config_rejects_unknown_keys(tmp_path):
    path = tmp_path / "search_config.json"
    path.write_text(json.dumps({"beam_depth": 3}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_search_config(str(path))
