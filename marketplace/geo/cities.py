from __future__ import annotations

from typing import List, Optional

from marketplace.geo.distance import distance_km
from marketplace.geo.models import City, Coordinate


MAJOR_CITIES: List[City] = [
    City("Toronto", "Ontario", Coordinate(43.6532, -79.3832)),
    City("Vancouver", "British Columbia", Coordinate(49.2827, -123.1207)),
    City("Montreal", "Quebec", Coordinate(45.5017, -73.5673)),
    City("Calgary", "Alberta", Coordinate(51.0447, -114.0719)),
    City("Edmonton", "Alberta", Coordinate(53.5444, -113.4909)),
    City("Ottawa", "Ontario", Coordinate(45.4215, -75.6972)),
    City("Winnipeg", "Manitoba", Coordinate(49.8951, -97.1384)),
    City("Quebec City", "Quebec", Coordinate(46.8139, -71.2080)),
    City("Hamilton", "Ontario", Coordinate(43.2557, -79.8711)),
    City("Kitchener", "Ontario", Coordinate(43.4516, -80.4925)),
]


def find_city(name: str) -> Optional[City]:
    wanted = " ".join(name.strip().lower().split())
    for city in MAJOR_CITIES:
        if city.name.lower() == wanted:
            return city
    return None


def nearest_city(coordinate: Coordinate) -> City:
    return min(MAJOR_CITIES, key=lambda city: distance_km(coordinate, city.coordinate))
