"""Loop scoring: distance fitness, closure and leg spacing. Lower is better."""
from __future__ import annotations

import math
from typing import Dict, Sequence

from . import config
from .config import SearchConfig
from .geo import Coordinate, leg_distances_m


def distance_fitness(
    distance_m: float,
    target_m: float,
    band_min_m: float,
    band_max_m: float,
    out_of_band_weight: float = config.SCORE_OUT_OF_BAND_WEIGHT,
) -> float:
    if target_m <= 0:
        raise ValueError("target_m must be positive")
    deviation = abs(distance_m - target_m) / target_m
    if distance_m < band_min_m:
        deviation += out_of_band_weight * (band_min_m - distance_m) / target_m
    elif distance_m > band_max_m:
        deviation += out_of_band_weight * (distance_m - band_max_m) / target_m
    return deviation


def closure_penalty(legs: Sequence[float]) -> float:
    """Relative difference between the return leg and the mean of the other legs."""
    if len(legs) < 2:
        return 0.0
    *outbound, return_leg = legs
    mean_out = sum(outbound) / len(outbound)
    if mean_out <= 0:
        return 0.0 if return_leg <= 0 else 1.0
    return abs(return_leg - mean_out) / mean_out


def leg_spacing_cv(legs: Sequence[float]) -> float:
    """Coefficient of variation of leg lengths."""
    if not legs:
        return 0.0
    mean = sum(legs) / len(legs)
    if mean <= 0:
        return 0.0
    variance = sum((leg - mean) ** 2 for leg in legs) / len(legs)
    return math.sqrt(variance) / mean


def score_loop(
    points: Sequence[Coordinate],
    target_m: float,
    band_min_m: float,
    band_max_m: float,
    distance_weight: float = config.SCORE_WEIGHT_DISTANCE,
    closure_weight: float = config.SCORE_WEIGHT_CLOSURE,
    spacing_weight: float = config.SCORE_WEIGHT_SPACING,
    out_of_band_weight: float = config.SCORE_OUT_OF_BAND_WEIGHT,
) -> Dict[str, float]:
    """Score a closed loop on its great-circle length; road inflation is not applied."""
    if len(points) < 2:
        return {
            "distance_m": 0.0,
            "distance_fitness": config.WORST_SCORE,
            "closure": config.WORST_SCORE,
            "spacing": config.WORST_SCORE,
            "score": config.WORST_SCORE,
        }

    legs = leg_distances_m(points)
    total = sum(legs)
    fitness = distance_fitness(total, target_m, band_min_m, band_max_m, out_of_band_weight)
    closure = closure_penalty(legs)
    spacing = leg_spacing_cv(legs)
    score = distance_weight * fitness + closure_weight * closure + spacing_weight * spacing
    return {
        "distance_m": total,
        "distance_fitness": fitness,
        "closure": closure,
        "spacing": spacing,
        "score": score,
    }


def score_for_config(points: Sequence[Coordinate], cfg: SearchConfig) -> Dict[str, float]:
    return score_loop(
        points,
        cfg.target_distance_m,
        cfg.min_distance_m,
        cfg.max_distance_m,
        distance_weight=cfg.distance_weight,
        closure_weight=cfg.closure_weight,
        spacing_weight=cfg.spacing_weight,
        out_of_band_weight=cfg.out_of_band_weight,
    )


def road_estimate_m(distance_m: float, cfg: SearchConfig) -> float:
    """Great-circle length inflated to what a road route would likely measure."""
    return distance_m * cfg.road_multiplier
