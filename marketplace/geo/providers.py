from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Protocol
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from marketplace.common.local_bind import LocalBindError, ensure_local_url
from marketplace.geo.models import Coordinate, GeocodeError, LocationMatch


DEFAULT_COUNTRY = "Canada"


class LocationProvider(Protocol):
    def current_location(self) -> Optional[Coordinate]: ...


class StaticLocationProvider:
    """Location provider for callers that already know where the user is."""

    def __init__(self, coordinate: Optional[Coordinate] = None) -> None:
        self._coordinate = coordinate

    def current_location(self) -> Optional[Coordinate]:
        return self._coordinate

    def update(self, coordinate: Optional[Coordinate]) -> None:
        self._coordinate = coordinate


class HttpTransport(Protocol):
    def request(self, *, method: str, url: str, params: Optional[Dict[str, Any]] = None) -> Any: ...


class LocalHttpTransport:
    def __init__(
        self,
        *,
        allowed_hosts: Optional[Iterable[str]] = None,
        allow_private_ips: bool = False,
        user_agent: str = "MarketplaceApp/1.0",
        timeout_s: float = 10.0,
    ) -> None:
        self._allowed_hosts = set(allowed_hosts or [])
        self._allow_private_ips = allow_private_ips
        self._user_agent = user_agent
        self._timeout_s = timeout_s

    def request(self, *, method: str, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if params:
            url = f"{url}?{urlencode(params)}"
        ensure_local_url(url, allowed_hosts=self._allowed_hosts, allow_private_ips=self._allow_private_ips)
        request = Request(url, headers={"User-Agent": self._user_agent}, method=method)
        with urlopen(request, timeout=self._timeout_s) as response:  # nosec B310 - local-only enforced
            payload = response.read()
        if not payload:
            return None
        return json.loads(payload)


def _parse_coordinate(lat: Any, lon: Any) -> Coordinate:
    try:
        return Coordinate(latitude=round(float(lat), 6), longitude=round(float(lon), 6))
    except (TypeError, ValueError) as exc:
        raise GeocodeError("Invalid coordinate", details={"lat": str(lat), "lon": str(lon)}) from exc


def _city_from_address(address: Dict[str, Any]) -> Optional[str]:
    return address.get("city") or address.get("town") or address.get("village") or address.get("suburb")


class NominatimLocationProvider:
    """Forward and reverse geocoding against a self-hosted Nominatim instance."""

    def __init__(
        self,
        *,
        base_url: str,
        transport: Optional[HttpTransport] = None,
        allowed_hosts: Optional[Iterable[str]] = None,
        country_codes: str = "ca",
    ) -> None:
        ensure_local_url(base_url, allowed_hosts=allowed_hosts)
        self._base_url = base_url.rstrip("/")
        self._transport = transport or LocalHttpTransport(allowed_hosts=allowed_hosts)
        self._country_codes = country_codes

    def search(self, query: str, *, limit: int = 5) -> List[LocationMatch]:
        if not query.strip():
            return []
        response = self._get(
            "/search",
            {
                "format": "json",
                "q": query.strip(),
                "countrycodes": self._country_codes,
                "addressdetails": 1,
                "limit": limit,
            },
        )
        if not isinstance(response, list):
            return []
        matches: List[LocationMatch] = []
        for item in response[:limit]:
            address = item.get("address") or {}
            matches.append(
                LocationMatch(
                    coordinate=_parse_coordinate(item.get("lat"), item.get("lon")),
                    label=item.get("display_name"),
                    city=address.get("city") or address.get("town") or address.get("village"),
                    state=address.get("state"),
                    country=address.get("country") or DEFAULT_COUNTRY,
                    metadata={"raw": item},
                )
            )
        return matches

    def reverse(self, coordinate: Coordinate) -> Optional[LocationMatch]:
        response = self._get(
            "/reverse",
            {
                "format": "json",
                "lat": coordinate.latitude,
                "lon": coordinate.longitude,
                "addressdetails": 1,
            },
        )
        if not isinstance(response, dict) or "error" in response:
            return None
        address = response.get("address") or {}
        return LocationMatch(
            coordinate=coordinate,
            label=response.get("display_name"),
            city=_city_from_address(address),
            state=address.get("state"),
            country=address.get("country") or DEFAULT_COUNTRY,
            metadata={"raw": response},
        )

    def _get(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            return self._transport.request(method="GET", url=f"{self._base_url}{path}", params=params)
        except LocalBindError as exc:
            raise GeocodeError("Nominatim URL not local-only", code="NOT_LOCAL") from exc
        except GeocodeError:
            raise
        except Exception as exc:
            raise GeocodeError(
                "Nominatim request failed",
                code="PROVIDER_UNAVAILABLE",
                details={"path": path, "error": str(exc)},
            ) from exc
