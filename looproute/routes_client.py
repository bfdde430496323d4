"""Routes API client: real travel distance for an ordered list of stops."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from . import config
from .geo import Coordinate
from .http import HttpClient, RequestBudget, request_fingerprint


class NoRouteError(RuntimeError):
    pass


class RoutesClient:
    def __init__(
        self,
        http_client: HttpClient,
        budget: RequestBudget,
        travel_mode: str = config.TRAVEL_MODE,
        field_mask: str = config.ROUTES_FIELD_MASK_MIN,
    ) -> None:
        self.http = http_client
        self.budget = budget
        self.travel_mode = travel_mode
        self.field_mask = field_mask
        self._memory_cache: Dict[str, List[float]] = {}

    def get_route_distance(self, ordered: Sequence[Coordinate]) -> Dict[str, List[float]]:
        body = build_routes_body(ordered, self.travel_mode)
        key = request_fingerprint("POST", config.ROUTES_COMPUTE_URL, self.field_mask, body)
        legs = self._memory_cache.get(key)
        if legs is not None:
            self.budget.record_cache_hit()
            return {"leg_distances_m": list(legs)}

        self.budget.consume()
        response = self.http.post_json(config.ROUTES_COMPUTE_URL, body, self.field_mask)
        legs = parse_route_legs(response)
        if legs is None:
            raise NoRouteError(f"No route returned for {len(ordered)} stops")
        self._memory_cache[key] = legs
        return {"leg_distances_m": list(legs)}


def _waypoint(point: Coordinate) -> Dict[str, Any]:
    return {"location": {"latLng": {"latitude": point.lat, "longitude": point.lon}}}


def build_routes_body(ordered: Sequence[Coordinate], mode: str) -> Dict[str, Any]:
    if len(ordered) < 2:
        raise ValueError("A route needs at least an origin and a destination")
    body: Dict[str, Any] = {
        "origin": _waypoint(ordered[0]),
        "destination": _waypoint(ordered[-1]),
        "travelMode": mode,
    }
    if len(ordered) > 2:
        body["intermediates"] = [_waypoint(p) for p in ordered[1:-1]]
    if config.ROUTES_BODY_EXTRA:
        body.update(config.ROUTES_BODY_EXTRA)
    return body


def parse_route_legs(response: Dict[str, Any]) -> Optional[List[float]]:
    routes = response.get("routes") or []
    if not routes:
        return None
    legs = routes[0].get("legs") or []
    if not legs:
        total = routes[0].get("distanceMeters")
        return [float(total)] if total is not None else None
    # Zero-length legs come back without distanceMeters.
    return [float(leg.get("distanceMeters") or 0) for leg in legs]
