import math

import pytest

from looproute import config
from looproute.config import SearchConfig
from looproute.geo import Coordinate, path_distance_m
from looproute.scoring import (
    closure_penalty,
    distance_fitness,
    leg_spacing_cv,
    road_estimate_m,
    score_for_config,
    score_loop,
)


def _square(size_deg):
    return [
        Coordinate(0.0, 0.0),
        Coordinate(0.0, size_deg),
        Coordinate(size_deg, size_deg),
        Coordinate(size_deg, 0.0),
        Coordinate(0.0, 0.0),
    ]


def test_distance_fitness_grows_outside_band():
    inside = distance_fitness(52000, 50000, 45000, 55000)
    edge = distance_fitness(55000, 50000, 45000, 55000)
    outside = distance_fitness(60000, 50000, 45000, 55000)
    far_outside = distance_fitness(70000, 50000, 45000, 55000)
    assert distance_fitness(50000, 50000, 45000, 55000) == 0.0
    assert inside < edge < outside < far_outside
    # the band penalty is added on top of the plain deviation
    assert outside > abs(60000 - 50000) / 50000


def test_distance_fitness_penalizes_short_loops():
    assert distance_fitness(40000, 50000, 45000, 55000) > distance_fitness(55000, 50000, 45000, 55000)


def test_even_legs_beat_doubled_and_halved_leg():
    even = [1000.0, 1000.0, 1000.0, 1000.0]
    uneven = [2000.0, 500.0, 1000.0, 1000.0]
    assert leg_spacing_cv(even) == 0.0
    assert leg_spacing_cv(uneven) > leg_spacing_cv(even)


def test_closure_penalty_measures_return_leg():
    assert closure_penalty([1000.0, 1000.0, 1000.0]) == 0.0
    assert closure_penalty([1000.0, 1000.0, 3000.0]) == pytest.approx(2.0)
    assert closure_penalty([1000.0]) == 0.0


def test_square_loop_at_target_scores_near_zero():
    pts = _square(0.01)
    target = path_distance_m(pts)
    result = score_loop(pts, target, target * 0.9, target * 1.1)
    assert result["distance_fitness"] == pytest.approx(0.0)
    assert result["score"] < 0.01


def _along_equator(*lons):
    return [Coordinate(0.0, lon) for lon in lons]


def test_even_loop_scores_at_least_as_well_as_uneven_loop():
    # same total length; the uneven loop doubles one leg and halves another
    even = _along_equator(0.0, 0.01, 0.02, 0.01, 0.0)
    uneven = _along_equator(0.0, 0.02, 0.015, 0.01, 0.0)
    target = path_distance_m(even)
    even_result = score_loop(even, target, target * 0.9, target * 1.1)
    uneven_result = score_loop(uneven, target, target * 0.9, target * 1.1)
    assert uneven_result["distance_m"] == pytest.approx(even_result["distance_m"])
    assert uneven_result["distance_fitness"] == pytest.approx(even_result["distance_fitness"])
    assert even_result["spacing"] == pytest.approx(0.0, abs=1e-9)
    assert uneven_result["spacing"] > 0
    assert even_result["score"] <= uneven_result["score"]


def test_score_uses_great_circle_length():
    pts = _square(0.01)
    geodesic = path_distance_m(pts)
    cfg = SearchConfig(
        min_distance_m=geodesic * 0.9, max_distance_m=geodesic * 1.1, road_multiplier=1.18
    )
    result = score_for_config(pts, cfg)
    assert result["distance_m"] == pytest.approx(geodesic)
    assert result["distance_fitness"] == pytest.approx(0.0, abs=1e-9)
    assert road_estimate_m(result["distance_m"], cfg) == pytest.approx(geodesic * 1.18)


def test_degenerate_loop_gets_worst_score():
    result = score_loop([Coordinate(0.0, 0.0)], 1000, 900, 1100)
    assert result["score"] == config.WORST_SCORE
    assert math.isinf(result["score"])


def test_score_for_config_uses_config_band_and_weights():
    pts = _square(0.1)
    cfg = SearchConfig(spacing_weight=0.0, closure_weight=0.0)
    result = score_for_config(pts, cfg)
    expected = distance_fitness(
        path_distance_m(pts), cfg.target_distance_m, cfg.min_distance_m, cfg.max_distance_m
    )
    assert result["score"] == pytest.approx(expected)
