from __future__ import annotations

import math

from marketplace.geo.models import Coordinate


EARTH_RADIUS_KM = 6371.0


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates using the Haversine formula.

    Inputs are not range checked. Out-of-range latitudes or longitudes still
    produce a number, it just does not mean anything.
    """
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    # rounding can push h a hair above 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def format_distance(km: float) -> str:
    if km < 1:
        return f"{int(math.floor(km * 1000 + 0.5))}m"
    return f"{km:.1f}km"
