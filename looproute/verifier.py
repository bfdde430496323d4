"""Check top-ranked loops against the authoritative distance oracle."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from .config import SearchConfig
from .geo import Coordinate
from .models import ProgressStatus, RouteCandidate
from .reporting import ProgressReporter

logger = logging.getLogger(__name__)


class DistanceOracle(Protocol):
    def get_route_distance(self, ordered: Sequence[Coordinate]) -> Dict[str, List[float]]:
        ...


@dataclass
class VerifiedRoute:
    candidate: RouteCandidate
    rank: int
    distance_m: float


@dataclass
class VerificationOutcome:
    best: Optional[VerifiedRoute] = None
    calls_used: int = 0
    successes: int = 0
    failures: int = 0
    out_of_range: List[VerifiedRoute] = field(default_factory=list)

    @property
    def all_calls_failed(self) -> bool:
        return self.calls_used > 0 and self.successes == 0


def verified_distance(oracle: DistanceOracle, candidate: RouteCandidate) -> float:
    response = oracle.get_route_distance([s.location for s in candidate.loop])
    legs = response.get("leg_distances_m")
    if not legs:
        raise ValueError("Oracle response carried no leg distances")
    return float(sum(legs))


def _preference_key(route: VerifiedRoute, target_m: float) -> Tuple[float, int, float, int]:
    return (
        abs(route.distance_m - target_m),
        -route.candidate.stop_count,
        route.candidate.score,
        route.rank,
    )


def verify_candidates(
    candidates: Sequence[RouteCandidate],
    oracle: DistanceOracle,
    cfg: SearchConfig,
    reporter: Optional[ProgressReporter] = None,
) -> VerificationOutcome:
    """Verify the top candidates in rank order until the call budget runs out.

    Oracle failures for one candidate are logged and verification moves on.
    Only loops whose verified distance lands inside the configured band can
    win; among those the one closest to the target distance is kept.
    """
    outcome = VerificationOutcome()
    target_m = cfg.target_distance_m
    shortlist = list(candidates)[: cfg.verify_top_n]

    for rank, candidate in enumerate(shortlist):
        if outcome.calls_used >= cfg.max_oracle_calls:
            logger.info("Oracle call budget exhausted after %s calls", outcome.calls_used)
            break

        outcome.calls_used += 1
        try:
            distance = verified_distance(oracle, candidate)
        except Exception as exc:
            outcome.failures += 1
            logger.warning(
                "Verification failed for candidate #%s (%s stops): %s",
                rank + 1,
                candidate.stop_count,
                exc,
            )
            message = f"Oracle call {outcome.calls_used} failed for candidate #{rank + 1}"
        else:
            outcome.successes += 1
            route = VerifiedRoute(candidate=candidate, rank=rank, distance_m=distance)
            in_range = cfg.min_distance_m <= distance <= cfg.max_distance_m
            logger.info(
                "Candidate #%s: %s stops, estimated %.0f m, verified %.0f m%s",
                rank + 1,
                candidate.stop_count,
                candidate.estimated_distance_m,
                distance,
                "" if in_range else " (out of range)",
            )
            if not in_range:
                outcome.out_of_range.append(route)
            elif outcome.best is None or _preference_key(route, target_m) < _preference_key(
                outcome.best, target_m
            ):
                outcome.best = route
            message = f"Verified candidate #{rank + 1}: {distance:.0f} m"

        if reporter is not None:
            reporter.emit(
                ProgressStatus.VERIFYING_ROUTES,
                message,
                oracle_calls_used=outcome.calls_used,
            )

    return outcome
