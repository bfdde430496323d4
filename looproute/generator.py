"""Candidate loop generation.

Loops are built by a construction strategy, deduplicated by the set of stops
they visit, pruned when their road-adjusted estimate already overshoots the
target, and ranked by the loop scorer (lower is better).

Two strategies ship here:

- RandomizedGreedyStrategy: shuffles the pool, then repeatedly adds the stop
  that best balances proximity to the last stop against the ideal leg length,
  occasionally taking one of the runners-up so repeated attempts diverge.
- BeamSearchStrategy: deterministic beam over partial paths, expanding each
  with its nearest unvisited stops and keeping the best-scoring partials.
"""
from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from . import config
from .config import SearchConfig
from .geo import distance_m
from .models import ProgressStatus, RouteCandidate, Stop, close_loop, loop_signature
from .reporting import ProgressReporter
from .scoring import road_estimate_m, score_for_config, score_loop

logger = logging.getLogger(__name__)


class ConstructionStrategy(Protocol):
    def build(
        self,
        start: Stop,
        pool: Sequence[Stop],
        target_distance_m: float,
        stop_count: int,
        rng: random.Random,
        cfg: SearchConfig,
    ) -> Optional[List[Stop]]:
        ...


def rank_next_stops(
    last: Stop,
    options: Iterable[Stop],
    target_leg_m: float,
    proximity_weight: float,
    leg_fit_weight: float,
) -> List[Tuple[float, Stop]]:
    """Cost of each option as the next stop after last, cheapest first.

    Proximity is the leg length relative to the farthest option; leg fit is
    the relative gap between the leg and the target leg length.
    """
    legs = [(distance_m(last.location, s.location), s) for s in options]
    if not legs:
        return []
    farthest = max(d for d, _ in legs) or 1.0
    ranked = []
    for d, stop in legs:
        proximity = d / farthest
        leg_fit = abs(d - target_leg_m) / target_leg_m
        ranked.append((proximity_weight * proximity + leg_fit_weight * leg_fit, stop))
    ranked.sort(key=lambda item: item[0])
    return ranked


class RandomizedGreedyStrategy:
    deterministic = False

    def build(
        self,
        start: Stop,
        pool: Sequence[Stop],
        target_distance_m: float,
        stop_count: int,
        rng: random.Random,
        cfg: SearchConfig,
    ) -> Optional[List[Stop]]:
        candidates = list(pool)
        rng.shuffle(candidates)
        target_leg = target_distance_m / stop_count * cfg.leg_conservatism

        path: List[Stop] = []
        visited = {start.place_id}
        last = start
        while len(path) < stop_count - 1:
            ranked = rank_next_stops(
                last,
                (s for s in candidates if s.place_id not in visited),
                target_leg,
                cfg.proximity_weight,
                cfg.leg_fit_weight,
            )
            if not ranked:
                return None
            if len(ranked) == 1 or rng.random() < cfg.greedy_pick_probability:
                _, chosen = ranked[0]
            else:
                runners_up = ranked[1 : 1 + cfg.diversity_pool_size]
                _, chosen = rng.choice(runners_up)
            path.append(chosen)
            visited.add(chosen.place_id)
            last = chosen
        return close_loop(start, path)


class BeamSearchStrategy:
    """Keeps the best partial paths at each depth.

    Partial paths are scored as closed loops against a target scaled to the
    share of the final legs they already have (a loop of stop_count stops has
    stop_count legs), so short prefixes are not punished for being short.
    """

    deterministic = True

    def __init__(self, beam_width: int = config.BEAM_WIDTH, neighbours: int = config.BEAM_NEIGHBOURS) -> None:
        if beam_width <= 0 or neighbours <= 0:
            raise ValueError("beam_width and neighbours must be positive")
        self.beam_width = beam_width
        self.neighbours = neighbours

    def _partial_score(self, path: List[Stop], start: Stop, stop_count: int, cfg: SearchConfig) -> float:
        loop = close_loop(start, path)
        fraction = (len(path) + 1) / stop_count
        breakdown = score_loop(
            [s.location for s in loop],
            cfg.target_distance_m * fraction,
            cfg.min_distance_m * fraction,
            cfg.max_distance_m * fraction,
            distance_weight=cfg.distance_weight,
            closure_weight=cfg.closure_weight,
            spacing_weight=cfg.spacing_weight,
            out_of_band_weight=cfg.out_of_band_weight,
        )
        return breakdown["score"]

    def build(
        self,
        start: Stop,
        pool: Sequence[Stop],
        target_distance_m: float,
        stop_count: int,
        rng: random.Random,
        cfg: SearchConfig,
    ) -> Optional[List[Stop]]:
        limit = target_distance_m * (1 + cfg.overshoot_tolerance)
        beam: List[List[Stop]] = [[]]
        for _ in range(stop_count - 1):
            expanded: List[Tuple[float, Tuple[str, ...], List[Stop]]] = []
            for path in beam:
                last = path[-1] if path else start
                visited = {start.place_id, *(s.place_id for s in path)}
                nearest = sorted(
                    (s for s in pool if s.place_id not in visited),
                    key=lambda s: (distance_m(last.location, s.location), s.place_id),
                )[: self.neighbours]
                for stop in nearest:
                    new_path = path + [stop]
                    loop = close_loop(start, new_path)
                    breakdown = score_for_config([s.location for s in loop], cfg)
                    # Adding stops never shortens the closed loop, so overshoot is final.
                    if road_estimate_m(breakdown["distance_m"], cfg) > limit:
                        continue
                    score = self._partial_score(new_path, start, stop_count, cfg)
                    expanded.append((score, tuple(s.place_id for s in new_path), new_path))
            if not expanded:
                return None
            expanded.sort(key=lambda item: (item[0], item[1]))
            beam = [path for _, _, path in expanded[: self.beam_width]]
        return close_loop(start, beam[0])


def generate_candidates(
    start: Stop,
    pool: Sequence[Stop],
    target_distance_m: float,
    stop_count: int,
    cfg: SearchConfig,
    rng: Optional[random.Random] = None,
    strategy: Optional[ConstructionStrategy] = None,
) -> List[RouteCandidate]:
    """All accepted loops with stop_count distinct stops, best score first.

    The start counts as one of the stops, so each loop is the start, then
    stop_count - 1 pool stops, then the start again. An empty list is a
    valid outcome for sparse pools.
    """
    rng = rng or random.Random()
    strategy = strategy or RandomizedGreedyStrategy()
    pool = [s for s in pool if s.place_id != start.place_id]
    if stop_count < 2 or len(pool) < stop_count - 1:
        return []

    attempts = 1 if getattr(strategy, "deterministic", False) else cfg.attempts_per_stop_count
    limit = target_distance_m * (1 + cfg.overshoot_tolerance)
    seen: set[Tuple[str, ...]] = set()
    accepted: List[RouteCandidate] = []
    overshoots = 0
    for _ in range(attempts):
        loop = strategy.build(start, pool, target_distance_m, stop_count, rng, cfg)
        if loop is None:
            continue
        signature = loop_signature(loop)
        if signature in seen:
            continue
        breakdown = score_for_config([s.location for s in loop], cfg)
        if road_estimate_m(breakdown["distance_m"], cfg) > limit:
            overshoots += 1
            continue
        seen.add(signature)
        accepted.append(
            RouteCandidate(
                loop=loop,
                estimated_distance_m=breakdown["distance_m"],
                score=breakdown["score"],
            )
        )

    accepted.sort(key=RouteCandidate.sort_key)
    logger.debug(
        "stop_count=%s attempts=%s accepted=%s overshoots=%s",
        stop_count,
        attempts,
        len(accepted),
        overshoots,
    )
    return accepted


def merge_candidates(groups: Iterable[List[RouteCandidate]]) -> List[RouteCandidate]:
    merged = [c for group in groups for c in group]
    merged.sort(key=RouteCandidate.sort_key)
    return merged


def generate_all(
    start: Stop,
    pool: Sequence[Stop],
    cfg: SearchConfig,
    rng: Optional[random.Random] = None,
    strategy: Optional[ConstructionStrategy] = None,
    reporter: Optional[ProgressReporter] = None,
) -> List[RouteCandidate]:
    """Generate for every stop count in the configured range and rank globally."""
    rng = rng or random.Random()
    by_count: Dict[int, List[RouteCandidate]] = {}
    total = 0
    for stop_count in cfg.stop_counts():
        found = generate_candidates(
            start, pool, cfg.target_distance_m, stop_count, cfg, rng=rng, strategy=strategy
        )
        by_count[stop_count] = found
        total += len(found)
        if not found:
            logger.info("No loops generated for %s stops; skipping", stop_count)
        if reporter is not None:
            reporter.emit(
                ProgressStatus.GENERATING_ROUTES,
                f"Generated {len(found)} loops with {stop_count} stops",
                candidates_evaluated=total,
            )
    return merge_candidates(by_count[c] for c in sorted(by_count))
