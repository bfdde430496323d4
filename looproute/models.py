"""Route search domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .geo import Coordinate


class ProgressStatus(str, Enum):
    GATHERING_CANDIDATES = "gathering-candidates"
    GENERATING_ROUTES = "generating-routes"
    VERIFYING_ROUTES = "verifying-routes"
    COMPLETE = "complete"
    FAILED = "failed"


class ErrorKind(str, Enum):
    INSUFFICIENT_CANDIDATES = "InsufficientCandidates"
    NO_CANDIDATES_GENERATED = "NoCandidatesGenerated"
    ORACLE_UNAVAILABLE = "OracleUnavailable"
    NO_FEASIBLE_ROUTE = "NoFeasibleRoute"
    LOOKUP_UNAVAILABLE = "LookupUnavailable"


class RouteSearchError(RuntimeError):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class Stop:
    place_id: str
    name: str
    address: str
    location: Coordinate

    @property
    def lat(self) -> float:
        return self.location.lat

    @property
    def lon(self) -> float:
        return self.location.lon

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place_id": self.place_id,
            "name": self.name,
            "address": self.address,
            "lat": self.lat,
            "lon": self.lon,
        }


def close_loop(start: Stop, interior: Sequence[Stop]) -> List[Stop]:
    return [start, *interior, start]


def loop_signature(loop: Sequence[Stop]) -> Tuple[str, ...]:
    """Sorted interior stop ids; two loops over the same stops share a signature."""
    return tuple(sorted(s.place_id for s in loop[1:-1]))


def is_valid_loop(loop: Sequence[Stop]) -> bool:
    if len(loop) < 2:
        return False
    if loop[0].place_id != loop[-1].place_id:
        return False
    ids = [s.place_id for s in loop[:-1]]
    return len(ids) == len(set(ids))


@dataclass
class RouteCandidate:
    loop: List[Stop]
    estimated_distance_m: float
    score: float

    @property
    def stop_count(self) -> int:
        return len(self.loop) - 1

    @property
    def signature(self) -> Tuple[str, ...]:
        return loop_signature(self.loop)

    def sort_key(self) -> Tuple[float, int, Tuple[str, ...]]:
        return (self.score, -self.stop_count, self.signature)


@dataclass
class SearchProgress:
    status: ProgressStatus
    message: str
    candidates_found: Optional[int] = None
    oracle_calls_used: Optional[int] = None
    candidates_evaluated: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "candidates_found": self.candidates_found,
            "oracle_calls_used": self.oracle_calls_used,
            "candidates_evaluated": self.candidates_evaluated,
        }


@dataclass
class SearchResult:
    success: bool
    route: List[Stop] = field(default_factory=list)
    distance_m: Optional[float] = None
    verified: bool = False
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    oracle_calls_used: int = 0
    candidates_evaluated: int = 0

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **counters: int) -> "SearchResult":
        return cls(success=False, error_kind=kind, message=message, **counters)

    @property
    def estimated(self) -> bool:
        return self.success and not self.verified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "verified": self.verified,
            "distance_m": self.distance_m,
            "route": [s.to_dict() for s in self.route],
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "oracle_calls_used": self.oracle_calls_used,
            "candidates_evaluated": self.candidates_evaluated,
        }
