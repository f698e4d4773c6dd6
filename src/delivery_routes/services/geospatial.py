"""Geospatial helper functions."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..config import settings
from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000.0


@dataclass(frozen=True, slots=True)
class TravelCost:
    distance_meters: float
    duration_seconds: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    if a == b:
        return 0.0
    return haversine_km(a.lat, a.lng, b.lat, b.lng) * 1000.0


def estimate_travel(a: Coordinate, b: Coordinate, average_speed_kmh: float | None = None) -> TravelCost:
    """Approximate road travel between two points from straight-line distance.

    The duration assumes a constant urban speed, so it is a rough figure, not a
    measured travel time.
    """

    speed_kmh = average_speed_kmh if average_speed_kmh is not None else settings.average_speed_kmh
    distance_m = haversine_m(a, b)
    duration_s = distance_m / (speed_kmh * 1000.0 / 3600.0)
    return TravelCost(distance_meters=distance_m, duration_seconds=duration_s)


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    Google Directions and OSRM both use this encoding (precision 5) for route geometry.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlat = ~(result >> 1) if (result & 1) else (result >> 1)
        lat += dlat

        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlon = ~(result >> 1) if (result & 1) else (result >> 1)
        lon += dlon

        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates
