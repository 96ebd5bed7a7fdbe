from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from marketplace.common.clock import Clock
from marketplace.common.enums import EntityType, SortMode
from marketplace.geo.providers import LocationProvider
from marketplace.listings.filters import apply_filters, paginate
from marketplace.listings.models import FilterCriteria, SearchPage
from marketplace.listings.repository import ListingRepository


@dataclass(frozen=True)
class SearchEvent:
    event_type: str
    details: Dict[str, Any]
    recorded_at: datetime


class ListingSearchObservability:
    def __init__(self) -> None:
        self._events: List[SearchEvent] = []

    def record(self, event_type: str, **details: Any) -> None:
        self._events.append(
            SearchEvent(
                event_type=event_type,
                details=details,
                recorded_at=datetime.now(tz=timezone.utc),
            )
        )

    def events(self) -> List[SearchEvent]:
        return list(self._events)


class ListingSearchService:
    def __init__(
        self,
        repository: ListingRepository,
        *,
        location_provider: Optional[LocationProvider] = None,
        clock: Optional[Clock] = None,
        observability: Optional[ListingSearchObservability] = None,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ) -> None:
        self._repository = repository
        self._location_provider = location_provider
        self._clock = clock or Clock()
        self._observability = observability or ListingSearchObservability()
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    @property
    def observability(self) -> ListingSearchObservability:
        return self._observability

    def search(
        self,
        entity_type: EntityType,
        criteria: FilterCriteria,
        *,
        use_current_location: bool = False,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> SearchPage:
        entities = self._repository.list_entities(entity_type, active_only=True)
        criteria = self._resolve_origin(criteria, use_current_location)
        if criteria.sort_mode == SortMode.distance and criteria.origin is None:
            # no origin means nothing was ordered by distance
            criteria = replace(criteria, sort_mode=SortMode.newest)
        ranked = apply_filters(entities, criteria, now=self._clock.now())
        size = min(page_size or self._default_page_size, self._max_page_size)
        result = paginate(ranked, page=page, page_size=size)
        self._observability.record(
            "search",
            entity_type=entity_type.value,
            sort_mode=criteria.sort_mode.value,
            origin_used=criteria.origin is not None,
            candidates=len(entities),
            matched=result.total,
        )
        return result

    def _resolve_origin(self, criteria: FilterCriteria, use_current_location: bool) -> FilterCriteria:
        if criteria.origin is not None or not use_current_location or self._location_provider is None:
            return criteria
        origin = self._location_provider.current_location()
        if origin is None:
            return criteria
        return replace(criteria, origin=origin)
