"""Candidate pool: nearby places filtered down to valid, unique stops."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .config import SearchConfig
from .geo import Coordinate, distance_m
from .models import ProgressStatus, Stop
from .reporting import ProgressReporter

logger = logging.getLogger(__name__)


class NearbyLookup(Protocol):
    def find_nearby(
        self,
        center: Coordinate,
        radius_m: float,
        keyword: str,
        place_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        ...


@dataclass
class CandidatePool:
    stops: List[Stop]
    found_count: int
    rejection_counts: Dict[str, int] = field(default_factory=dict)


def is_brand_match(name: Optional[str], brand_names: Iterable[str]) -> bool:
    lowered = (name or "").lower()
    return any(brand.lower() in lowered for brand in brand_names)


def is_eatery(types: Iterable[str], type_hints: Iterable[str]) -> bool:
    hints = [h.lower() for h in type_hints]
    return any(hint in str(t).lower() for t in types for hint in hints)


def place_to_stop(place: Dict[str, Any]) -> Stop:
    location = Coordinate(lat=float(place["lat"]), lon=float(place["lon"]))
    name = place.get("name") or ""
    return Stop(
        place_id=str(place["place_id"]),
        name=name,
        address=place.get("formatted_address") or name,
        location=location,
    )


def _rejection_reason(
    place: Dict[str, Any], center: Coordinate, radius_m: float, cfg: SearchConfig
) -> Optional[str]:
    if place.get("lat") is None or place.get("lon") is None:
        return "missing_location"
    try:
        location = Coordinate(lat=float(place["lat"]), lon=float(place["lon"]))
    except (TypeError, ValueError):
        return "invalid_location"
    if not is_eatery(place.get("types") or [], cfg.eatery_type_hints):
        return "not_eatery"
    if not is_brand_match(place.get("name"), cfg.brand_names):
        return "brand_mismatch"
    if distance_m(center, location) > radius_m:
        return "too_far"
    return None


def _enrich_address(lookup: NearbyLookup, place: Dict[str, Any]) -> Dict[str, Any]:
    get_details = getattr(lookup, "get_details", None)
    if place.get("formatted_address") or not callable(get_details):
        return place
    try:
        details = get_details(place["place_id"])
    except Exception as exc:
        logger.warning("Details lookup failed for %s: %s", place["place_id"], exc)
        return place
    enriched = dict(place)
    enriched["formatted_address"] = details.get("formatted_address")
    return enriched


def build_candidate_pool(
    lookup: NearbyLookup,
    center: Coordinate,
    cfg: SearchConfig,
    reporter: Optional[ProgressReporter] = None,
) -> CandidatePool:
    """Query the lookup around center and keep unique, on-brand eateries within radius.

    Lookup errors propagate unchanged; retrying is the lookup's business.
    """
    radius_m = cfg.search_radius_m
    logger.info(
        "Searching %r around %.6f,%.6f within %.0f m", cfg.keyword, center.lat, center.lon, radius_m
    )
    places = lookup.find_nearby(center, radius_m, cfg.keyword, place_type=cfg.place_type)

    stops: List[Stop] = []
    seen: set[str] = set()
    rejection_counts: Dict[str, int] = {}
    for place in places:
        place_id = str(place.get("place_id") or "")
        reason = None
        if not place_id:
            reason = "missing_id"
        elif place_id in seen:
            reason = "duplicate"
        else:
            reason = _rejection_reason(place, center, radius_m, cfg)
        if reason:
            rejection_counts[reason] = rejection_counts.get(reason, 0) + 1
            logger.debug("Skipped place %s (%s): %s", place_id, place.get("name"), reason)
            continue
        seen.add(place_id)
        stops.append(place_to_stop(_enrich_address(lookup, place)))

    logger.info("Found %s valid stops (%s results)", len(stops), len(places))
    if reporter is not None:
        reporter.emit(
            ProgressStatus.GATHERING_CANDIDATES,
            f"Found {len(stops)} candidate stops",
            candidates_found=len(stops),
        )
    return CandidatePool(stops=stops, found_count=len(stops), rejection_counts=rejection_counts)


def exclude_start(stops: Iterable[Stop], start: Stop, same_place_radius_m: float) -> List[Stop]:
    """Pool stops other than the start, matched by id or by standing on the same spot."""
    return [
        s
        for s in stops
        if s.place_id != start.place_id
        and distance_m(start.location, s.location) > same_place_radius_m
    ]
