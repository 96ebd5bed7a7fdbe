from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from marketplace.geo.providers import LocalHttpTransport, NominatimLocationProvider


@dataclass(frozen=True)
class GeoConfig:
    nominatim_url: str = "http://127.0.0.1:8080"
    user_agent: str = "MarketplaceApp/1.0"
    country_codes: str = "ca"
    timeout_s: float = 10.0
    search_limit: int = 5


def load_geo_config() -> GeoConfig:
    return GeoConfig(
        nominatim_url=os.getenv("NOMINATIM_URL", GeoConfig.nominatim_url),
        user_agent=os.getenv("GEO_USER_AGENT", GeoConfig.user_agent),
        country_codes=os.getenv("GEO_COUNTRY_CODES", GeoConfig.country_codes),
        timeout_s=float(os.getenv("GEO_TIMEOUT_S", "10")),
        search_limit=int(os.getenv("GEO_SEARCH_LIMIT", "5")),
    )


def build_location_provider(*, config: Optional[GeoConfig] = None) -> NominatimLocationProvider:
    cfg = config or load_geo_config()
    host = urlparse(cfg.nominatim_url).hostname
    allowed_hosts = {host} if host else set()
    transport = LocalHttpTransport(
        allowed_hosts=allowed_hosts,
        user_agent=cfg.user_agent,
        timeout_s=cfg.timeout_s,
    )
    return NominatimLocationProvider(
        base_url=cfg.nominatim_url,
        transport=transport,
        allowed_hosts=allowed_hosts,
        country_codes=cfg.country_codes,
    )
