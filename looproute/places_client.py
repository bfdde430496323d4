"""Places API client: keyword search around a point, place details, response parsing."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from . import config
from .geo import Coordinate
from .http import HttpClient, RequestBudget, request_fingerprint

logger = logging.getLogger(__name__)


class PlacesClient:
    def __init__(
        self,
        http_client: HttpClient,
        budget: RequestBudget,
        field_mask: str = config.PLACES_FIELD_MASK_MIN,
    ) -> None:
        self.http = http_client
        self.budget = budget
        self.field_mask = field_mask
        self._memory_cache: Dict[str, Dict[str, Any]] = {}

    def _fetch(self, key: str, send: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        cached = self._memory_cache.get(key)
        if cached is not None:
            self.budget.record_cache_hit()
            return cached
        self.budget.consume()
        response = send()
        self._memory_cache[key] = response
        return response

    def search_text(
        self,
        query: str,
        center: Coordinate,
        radius_m: float,
        type_filter: Optional[str] = None,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = build_text_search_body(query, center, radius_m, type_filter, page_token)
        key = request_fingerprint("POST", config.PLACES_TEXT_SEARCH_URL, self.field_mask, body)
        return self._fetch(
            key, lambda: self.http.post_json(config.PLACES_TEXT_SEARCH_URL, body, self.field_mask)
        )

    def find_nearby(
        self,
        center: Coordinate,
        radius_m: float,
        keyword: str,
        place_type: Optional[str] = None,
        max_pages: int = config.PLACES_MAX_PAGES_PER_QUERY,
    ) -> List[Dict[str, Any]]:
        places: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        for _ in range(max_pages):
            resp = self.search_text(
                keyword, center, radius_m, type_filter=place_type, page_token=page_token
            )
            places.extend(parse_places_response(resp))
            page_token = resp.get("nextPageToken")
            if not page_token:
                break
        logger.debug("Places search %r returned %s results", keyword, len(places))
        return places

    def get_details(self, place_id: str) -> Dict[str, Any]:
        url = config.PLACES_DETAILS_URL_TEMPLATE.format(place_id=quote(place_id, safe=""))
        key = request_fingerprint("GET", url, config.PLACES_DETAILS_FIELD_MASK)
        resp = self._fetch(
            key, lambda: self.http.get_json(url, config.PLACES_DETAILS_FIELD_MASK)
        )
        place = parse_place(resp)
        if place is None:
            raise ValueError(f"Place details response for {place_id} has no id")
        return place


def build_text_search_body(
    query: str,
    center: Coordinate,
    radius_m: float,
    type_filter: Optional[str],
    page_token: Optional[str],
) -> Dict[str, Any]:
    radius = min(float(radius_m), float(config.PLACES_MAX_BIAS_RADIUS_M))
    body: Dict[str, Any] = {
        "textQuery": query,
        "locationBias": {
            "circle": {
                "center": {"latitude": center.lat, "longitude": center.lon},
                "radius": radius,
            }
        },
    }
    if page_token:
        body["pageToken"] = page_token
    if type_filter:
        body["includedType"] = type_filter
    if config.PLACES_TEXT_SEARCH_BODY_EXTRA:
        body.update(config.PLACES_TEXT_SEARCH_BODY_EXTRA)
    return body


# Adapter/mapper for Places response fields

def parse_place(p: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    place_id = p.get("id") or p.get("placeId") or p.get("place_id")
    if not place_id:
        return None
    display = p.get("displayName") or p.get("name")
    if isinstance(display, dict):
        name = display.get("text") or display.get("value")
    else:
        name = display
    location = p.get("location") or p.get("latLng") or (p.get("geometry") or {}).get("location") or {}
    lat = location.get("latitude", location.get("lat"))
    lon = location.get("longitude", location.get("lng", location.get("lon")))
    return {
        "place_id": place_id,
        "name": name or "",
        "lat": lat,
        "lon": lon,
        "types": p.get("types") or [],
        "formatted_address": p.get("formattedAddress") or p.get("formatted_address"),
    }


def parse_places_response(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    parsed: List[Dict[str, Any]] = []
    for p in response.get("places") or []:
        place = parse_place(p)
        if place is not None:
            parsed.append(place)
    return parsed
