from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from marketplace.common.clock import Clock
from marketplace.geo.providers import LocationProvider
from marketplace.listings.repository import ListingRepository
from marketplace.listings.service import ListingSearchService


@dataclass(frozen=True)
class ListingsConfig:
    default_radius_km: float = 50.0
    default_page_size: int = 20
    max_page_size: int = 100


_shared_repository = ListingRepository()


def shared_listing_repository() -> ListingRepository:
    """Process-wide listing store: search reads it and the boost ledger writes it."""
    return _shared_repository


def load_listings_config() -> ListingsConfig:
    return ListingsConfig(
        default_radius_km=float(os.getenv("DEFAULT_RADIUS_KM", "50")),
        default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "20")),
        max_page_size=int(os.getenv("MAX_PAGE_SIZE", "100")),
    )


def build_listing_search_service(
    *,
    config: Optional[ListingsConfig] = None,
    repository: Optional[ListingRepository] = None,
    location_provider: Optional[LocationProvider] = None,
    clock: Optional[Clock] = None,
) -> tuple[ListingSearchService, ListingRepository]:
    cfg = config or load_listings_config()
    repo = repository or ListingRepository()
    service = ListingSearchService(
        repo,
        location_provider=location_provider,
        clock=clock,
        default_page_size=cfg.default_page_size,
        max_page_size=cfg.max_page_size,
    )
    return service, repo
