"""Geospatial helpers."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push a a hair above 1 for antipodal points.
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two coordinates."""
    return haversine_m(a.lat, a.lon, b.lat, b.lon)


def leg_distances_m(points: Sequence[Coordinate]) -> List[float]:
    return [distance_m(points[i], points[i + 1]) for i in range(len(points) - 1)]


def path_distance_m(points: Sequence[Coordinate]) -> float:
    return sum(leg_distances_m(points))
