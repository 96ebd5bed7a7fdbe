from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class GeoError(RuntimeError):
    def __init__(self, message: str, *, code: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class GeocodeError(GeoError):
    def __init__(self, message: str, *, code: str = "GEOCODE_ERROR", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationMatch:
    coordinate: Coordinate
    label: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class City:
    name: str
    state: str
    coordinate: Coordinate
