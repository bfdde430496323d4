import math
import random

import pytest

from looproute.config import SearchConfig
from looproute.geo import Coordinate, path_distance_m
from looproute.generator import (
    BeamSearchStrategy,
    RandomizedGreedyStrategy,
    generate_all,
    generate_candidates,
    rank_next_stops,
)
from looproute.models import ProgressStatus, RouteCandidate, Stop, is_valid_loop
from looproute.reporting import ProgressReporter

EARTH_RADIUS_M = 6371000.0
START = Stop("start", "Start", "Start", Coordinate(34.0, -118.0))

RING_CONFIG = SearchConfig(
    min_distance_m=45000.0,
    max_distance_m=55000.0,
    min_stops=8,
    max_stops=10,
    attempts_per_stop_count=60,
)


def ring(count=12, radius_m=5000.0, center=START.location):
    stops = []
    for i in range(count):
        theta = 2 * math.pi * i / count
        dlat = math.degrees(radius_m * math.cos(theta) / EARTH_RADIUS_M)
        dlon = math.degrees(
            radius_m * math.sin(theta) / (EARTH_RADIUS_M * math.cos(math.radians(center.lat)))
        )
        stops.append(
            Stop(f"s{i}", f"Stop {i}", f"{i} Ring Rd", Coordinate(center.lat + dlat, center.lon + dlon))
        )
    return stops


def test_loops_visit_distinct_stops_and_return_to_start():
    candidates = generate_candidates(
        START, ring(), RING_CONFIG.target_distance_m, 8, RING_CONFIG, rng=random.Random(1)
    )
    assert candidates
    for c in candidates:
        assert is_valid_loop(c.loop)
        assert c.loop[0] == START and c.loop[-1] == START
        assert c.stop_count == 8
        assert len({s.place_id for s in c.loop[:-1]}) == 8
        assert "start" not in [s.place_id for s in c.loop[1:-1]]


def test_candidates_are_unique_sorted_and_within_overshoot():
    cfg = RING_CONFIG
    candidates = generate_candidates(START, ring(), cfg.target_distance_m, 9, cfg, rng=random.Random(3))
    signatures = [c.signature for c in candidates]
    assert len(signatures) == len(set(signatures))
    assert [c.score for c in candidates] == sorted(c.score for c in candidates)
    limit = cfg.target_distance_m * (1 + cfg.overshoot_tolerance)
    for c in candidates:
        assert c.estimated_distance_m == pytest.approx(path_distance_m([s.location for s in c.loop]))
        assert c.estimated_distance_m * cfg.road_multiplier <= limit


def test_same_seed_gives_same_ranking():
    first = generate_candidates(
        START, ring(), RING_CONFIG.target_distance_m, 8, RING_CONFIG, rng=random.Random(42)
    )
    second = generate_candidates(
        START, ring(), RING_CONFIG.target_distance_m, 8, RING_CONFIG, rng=random.Random(42)
    )
    assert [(c.signature, [s.place_id for s in c.loop], c.score) for c in first] == [
        (c.signature, [s.place_id for s in c.loop], c.score) for c in second
    ]


def test_sparse_pool_yields_no_candidates():
    assert generate_candidates(START, ring(count=3), 50000.0, 8, RING_CONFIG) == []


def test_start_in_pool_is_ignored():
    pool = ring() + [START]
    candidates = generate_candidates(
        START, pool, RING_CONFIG.target_distance_m, 8, RING_CONFIG, rng=random.Random(5)
    )
    assert all(START not in c.loop[1:-1] for c in candidates)


def test_overshooting_loops_are_rejected():
    # every loop through a 5 km ring is longer than 20 km
    cfg = SearchConfig(
        min_distance_m=5000.0,
        max_distance_m=15000.0,
        min_stops=8,
        max_stops=8,
        attempts_per_stop_count=20,
    )
    assert generate_candidates(START, ring(), cfg.target_distance_m, 8, cfg, rng=random.Random(0)) == []


def test_rank_next_stops_prefers_leg_near_target():
    near = Stop("near", "Near", "Near", Coordinate(34.001, -118.0))
    mid = Stop("mid", "Mid", "Mid", Coordinate(34.01, -118.0))
    far = Stop("far", "Far", "Far", Coordinate(34.05, -118.0))
    ranked = rank_next_stops(START, [near, mid, far], 1100.0, 0.0, 1.0)
    assert [s.place_id for _, s in ranked] == ["mid", "near", "far"]
    ranked = rank_next_stops(START, [near, mid, far], 1100.0, 1.0, 0.0)
    assert [s.place_id for _, s in ranked] == ["near", "mid", "far"]


def test_greedy_strategy_returns_none_when_pool_runs_out():
    strategy = RandomizedGreedyStrategy()
    assert strategy.build(START, ring(count=3), 50000.0, 5, random.Random(0), RING_CONFIG) is None


def test_beam_strategy_builds_one_deterministic_loop():
    strategy = BeamSearchStrategy(beam_width=3, neighbours=6)
    first = generate_candidates(
        START, ring(), RING_CONFIG.target_distance_m, 8, RING_CONFIG, strategy=strategy
    )
    second = generate_candidates(
        START, ring(), RING_CONFIG.target_distance_m, 8, RING_CONFIG, strategy=strategy
    )
    assert len(first) == 1
    assert [s.place_id for s in first[0].loop] == [s.place_id for s in second[0].loop]
    assert is_valid_loop(first[0].loop)


def test_beam_strategy_rejects_bad_width():
    with pytest.raises(ValueError):
        BeamSearchStrategy(beam_width=0)


def test_generate_all_merges_stop_counts_by_score():
    seen = []
    reporter = ProgressReporter(callback=seen.append)
    merged = generate_all(START, ring(), RING_CONFIG, rng=random.Random(9), reporter=reporter)
    assert merged
    assert [c.sort_key() for c in merged] == sorted(c.sort_key() for c in merged)
    assert {c.stop_count for c in merged} <= {8, 9, 10}
    generating = [p for p in seen if p.status == ProgressStatus.GENERATING_ROUTES]
    assert len(generating) == 3
    assert generating[-1].candidates_evaluated == len(merged)


def test_sort_key_prefers_more_stops_on_equal_score():
    few = RouteCandidate(loop=[START, *ring()[:8], START], estimated_distance_m=1, score=0.5)
    many = RouteCandidate(loop=[START, *ring()[:9], START], estimated_distance_m=1, score=0.5)
    assert sorted([few, many], key=RouteCandidate.sort_key)[0] is many
