"""Route search orchestration."""
from __future__ import annotations

import logging
import random
from typing import List, Optional

from .candidates import NearbyLookup, build_candidate_pool, exclude_start
from .config import SearchConfig
from .generator import ConstructionStrategy, generate_all
from .models import (
    ErrorKind,
    ProgressStatus,
    RouteCandidate,
    RouteSearchError,
    SearchResult,
    Stop,
)
from .reporting import ProgressCallback, ProgressReporter
from .verifier import DistanceOracle, VerificationOutcome, verify_candidates

logger = logging.getLogger(__name__)


def open_route(loop: List[Stop]) -> List[Stop]:
    """Drop the duplicated start at the end of a closed loop."""
    if len(loop) > 1 and loop[0].place_id == loop[-1].place_id:
        return list(loop[:-1])
    return list(loop)


def _unverified_failure(outcome: VerificationOutcome) -> RouteSearchError:
    if outcome.all_calls_failed:
        return RouteSearchError(
            ErrorKind.ORACLE_UNAVAILABLE,
            f"All {outcome.calls_used} distance oracle calls failed",
        )
    return RouteSearchError(
        ErrorKind.NO_FEASIBLE_ROUTE,
        f"None of {outcome.successes} verified loops landed in the distance range",
    )


def find_optimal_route(
    start: Stop,
    lookup: NearbyLookup,
    oracle: DistanceOracle,
    cfg: Optional[SearchConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    rng: Optional[random.Random] = None,
    strategy: Optional[ConstructionStrategy] = None,
    progress_path: Optional[str] = None,
) -> SearchResult:
    """Plan a closed loop from start through nearby stops and back.

    Runs the pool builder, the generator for every stop count in range and
    the verifier, in that order. Search failures come back as a failed
    SearchResult; an invalid cfg raises ValueError.
    """
    cfg = cfg or SearchConfig()
    cfg.validate()
    rng = rng or random.Random()
    reporter = ProgressReporter(callback=on_progress, output_path=progress_path, logger=logger)

    oracle_calls_used = 0
    candidates_evaluated = 0
    try:
        # Stage 1: candidate pool
        logger.info("Stage 1: gathering candidates")
        reporter.emit(
            ProgressStatus.GATHERING_CANDIDATES,
            f"Searching for {cfg.keyword} within {cfg.search_radius_m:.0f} m",
        )
        try:
            pool = build_candidate_pool(lookup, start.location, cfg, reporter=reporter)
        except Exception as exc:
            raise RouteSearchError(
                ErrorKind.LOOKUP_UNAVAILABLE, f"Nearby lookup failed: {exc}"
            ) from exc
        if pool.found_count < cfg.min_stops:
            raise RouteSearchError(
                ErrorKind.INSUFFICIENT_CANDIDATES,
                f"Found {pool.found_count} stops, need at least {cfg.min_stops}",
            )
        stops = exclude_start(pool.stops, start, cfg.same_place_radius_m)

        # Stage 2: loop generation
        logger.info("Stage 2: generating routes")
        reporter.emit(
            ProgressStatus.GENERATING_ROUTES,
            f"Generating loops with {cfg.min_stops}-{cfg.max_stops} stops",
        )
        candidates: List[RouteCandidate] = generate_all(
            start, stops, cfg, rng=rng, strategy=strategy, reporter=reporter
        )
        candidates_evaluated = len(candidates)
        if not candidates:
            raise RouteSearchError(
                ErrorKind.NO_CANDIDATES_GENERATED,
                f"No loops could be generated from {len(stops)} stops",
            )

        # Stage 3: verification
        logger.info("Stage 3: verifying routes")
        reporter.emit(
            ProgressStatus.VERIFYING_ROUTES,
            f"Verifying top {min(cfg.verify_top_n, len(candidates))} of {len(candidates)} loops",
            candidates_evaluated=candidates_evaluated,
        )
        outcome = verify_candidates(candidates, oracle, cfg, reporter=reporter)
        oracle_calls_used = outcome.calls_used

        if outcome.best is not None:
            winner = outcome.best.candidate
            distance_m = outcome.best.distance_m
            verified = True
            message = f"Route found: {winner.stop_count} stops, {distance_m:.0f} m"
        elif cfg.allow_unverified_fallback:
            winner = candidates[0]
            distance_m = winner.estimated_distance_m
            verified = False
            message = f"Route found (estimated): {winner.stop_count} stops, {distance_m:.0f} m"
            logger.warning("No loop verified in range; falling back to best estimated loop")
        else:
            raise _unverified_failure(outcome)
    except RouteSearchError as exc:
        logger.error("Route search failed (%s): %s", exc.kind.value, exc)
        reporter.emit(
            ProgressStatus.FAILED,
            str(exc),
            oracle_calls_used=oracle_calls_used,
            candidates_evaluated=candidates_evaluated,
        )
        return SearchResult.failure(
            exc.kind,
            str(exc),
            oracle_calls_used=oracle_calls_used,
            candidates_evaluated=candidates_evaluated,
        )

    reporter.emit(
        ProgressStatus.COMPLETE,
        message,
        oracle_calls_used=oracle_calls_used,
        candidates_evaluated=candidates_evaluated,
    )
    return SearchResult(
        success=True,
        route=open_route(winner.loop),
        distance_m=distance_m,
        verified=verified,
        message=message,
        oracle_calls_used=oracle_calls_used,
        candidates_evaluated=candidates_evaluated,
    )
