"""Project configuration.

Loads user-defined search parameters from search_config.json when available,
falling back to sensible defaults. Keep API request shapes centralized here.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

PLACES_TEXT_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"
PLACES_DETAILS_URL_TEMPLATE = "https://places.googleapis.com/v1/places/{place_id}"
ROUTES_COMPUTE_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"

# --- Field masks ---

PLACES_FIELD_MASK_MIN = (
    "places.id,places.displayName,places.formattedAddress,"
    "places.location,places.types,nextPageToken"
)
PLACES_DETAILS_FIELD_MASK = "id,displayName,formattedAddress,location,types"
ROUTES_FIELD_MASK_MIN = "routes.distanceMeters,routes.legs.distanceMeters"

# --- Places API request shape ---

PLACES_MAX_PAGES_PER_QUERY = 3
# searchText rejects location bias circles above 50 km.
PLACES_MAX_BIAS_RADIUS_M = 50000
PLACES_TEXT_SEARCH_BODY_EXTRA: Dict[str, Any] = {}

# --- Routes ---

TRAVEL_MODE = "WALK"
ROUTES_BODY_EXTRA: Dict[str, Any] = {}

# --- Units ---

METERS_PER_MILE = 1609.34

# --- Search defaults ---

MIN_DISTANCE_M = 48280.0  # 30 miles
MAX_DISTANCE_M = 54717.0  # 34 miles
MIN_STOPS = 8
MAX_STOPS = 10
SEARCH_RADIUS = 15.0
MAX_ORACLE_CALLS = 50
VERIFY_TOP_N = 5

SEARCH_KEYWORD = "Taco Bell"
BRAND_NAMES: Tuple[str, ...] = ("taco bell", "tacobell")
EATERY_TYPE_HINTS: Tuple[str, ...] = ("restaurant", "food")
PLACE_TYPE = "restaurant"

# --- Generator ---

ATTEMPTS_PER_STOP_COUNT = 200
PROXIMITY_WEIGHT = 0.7
LEG_FIT_WEIGHT = 0.3
GREEDY_PICK_PROBABILITY = 0.7
DIVERSITY_POOL_SIZE = 3
# Road distances come back longer than straight-line estimates, so the
# greedy builder aims its legs short.
LEG_CONSERVATISM = 0.85
ROAD_MULTIPLIER = 1.18
OVERSHOOT_TOLERANCE = 0.10
# Pool stops this close to the start are treated as the start itself.
SAME_PLACE_RADIUS_M = 25.0

BEAM_WIDTH = 5
BEAM_NEIGHBOURS = 15

# --- Scoring ---

SCORE_WEIGHT_DISTANCE = 1.0
SCORE_WEIGHT_CLOSURE = 0.5
SCORE_WEIGHT_SPACING = 0.25
SCORE_OUT_OF_BAND_WEIGHT = 2.0
WORST_SCORE = float("inf")

# --- Budgets ---

MAX_PLACES_REQUESTS_PER_RUN = 20

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 5
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Outputs ---

OUTPUT_DIR = "out"


@dataclass(frozen=True)
class SearchConfig:
    min_distance_m: float = MIN_DISTANCE_M
    max_distance_m: float = MAX_DISTANCE_M
    min_stops: int = MIN_STOPS
    max_stops: int = MAX_STOPS
    search_radius: float = SEARCH_RADIUS
    radius_unit_m: float = METERS_PER_MILE
    max_oracle_calls: int = MAX_ORACLE_CALLS
    verify_top_n: int = VERIFY_TOP_N

    keyword: str = SEARCH_KEYWORD
    brand_names: Tuple[str, ...] = BRAND_NAMES
    eatery_type_hints: Tuple[str, ...] = EATERY_TYPE_HINTS
    place_type: Optional[str] = PLACE_TYPE

    attempts_per_stop_count: int = ATTEMPTS_PER_STOP_COUNT
    proximity_weight: float = PROXIMITY_WEIGHT
    leg_fit_weight: float = LEG_FIT_WEIGHT
    greedy_pick_probability: float = GREEDY_PICK_PROBABILITY
    diversity_pool_size: int = DIVERSITY_POOL_SIZE
    leg_conservatism: float = LEG_CONSERVATISM
    road_multiplier: float = ROAD_MULTIPLIER
    overshoot_tolerance: float = OVERSHOOT_TOLERANCE
    same_place_radius_m: float = SAME_PLACE_RADIUS_M

    distance_weight: float = SCORE_WEIGHT_DISTANCE
    closure_weight: float = SCORE_WEIGHT_CLOSURE
    spacing_weight: float = SCORE_WEIGHT_SPACING
    out_of_band_weight: float = SCORE_OUT_OF_BAND_WEIGHT

    travel_mode: str = TRAVEL_MODE
    allow_unverified_fallback: bool = True

    @property
    def search_radius_m(self) -> float:
        return self.search_radius * self.radius_unit_m

    @property
    def target_distance_m(self) -> float:
        return (self.min_distance_m + self.max_distance_m) / 2

    def stop_counts(self) -> range:
        return range(self.min_stops, self.max_stops + 1)

    def validate(self) -> None:
        positives = {
            "min_distance_m": self.min_distance_m,
            "max_distance_m": self.max_distance_m,
            "min_stops": self.min_stops,
            "max_stops": self.max_stops,
            "search_radius": self.search_radius,
            "radius_unit_m": self.radius_unit_m,
            "max_oracle_calls": self.max_oracle_calls,
            "verify_top_n": self.verify_top_n,
            "attempts_per_stop_count": self.attempts_per_stop_count,
            "diversity_pool_size": self.diversity_pool_size,
            "leg_conservatism": self.leg_conservatism,
            "road_multiplier": self.road_multiplier,
        }
        for name, value in positives.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive (got {value})")
        if self.min_distance_m > self.max_distance_m:
            raise ValueError("min_distance_m must not exceed max_distance_m")
        if self.min_stops > self.max_stops:
            raise ValueError("min_stops must not exceed max_stops")
        if not 0.0 <= self.greedy_pick_probability <= 1.0:
            raise ValueError("greedy_pick_probability must be between 0 and 1")
        if self.overshoot_tolerance < 0:
            raise ValueError("overshoot_tolerance must not be negative")
        if self.same_place_radius_m < 0:
            raise ValueError("same_place_radius_m must not be negative")
        weights = (
            self.proximity_weight,
            self.leg_fit_weight,
            self.distance_weight,
            self.closure_weight,
            self.spacing_weight,
            self.out_of_band_weight,
        )
        if any(w < 0 for w in weights):
            raise ValueError("weights must not be negative")
        if not self.brand_names:
            raise ValueError("brand_names must not be empty")


_TUPLE_FIELDS = {"brand_names", "eatery_type_hints"}


def load_search_config(
    path: Optional[str] = None, base: Optional[SearchConfig] = None
) -> Optional[SearchConfig]:
    """Load search configuration from a JSON file.

    Keys matching SearchConfig fields override the defaults (or ``base``);
    ``min_distance_miles``/``max_distance_miles`` are converted to meters.
    Returns None if the file is not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "search_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return None

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a JSON object")

    known = {f.name for f in fields(SearchConfig)}
    overrides: Dict[str, Any] = {}
    for key, value in data.items():
        if key in ("min_distance_miles", "max_distance_miles"):
            overrides[key.replace("_miles", "_m")] = float(value) * METERS_PER_MILE
        elif key in _TUPLE_FIELDS:
            overrides[key] = tuple(str(v).lower() for v in value)
        elif key in known:
            overrides[key] = value
        else:
            raise ValueError(f"Unknown search config key: {key}")

    return replace(base or SearchConfig(), **overrides)
