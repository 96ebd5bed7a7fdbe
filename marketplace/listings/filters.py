"""Listing filter and sort pipeline.

Every function here is pure: inputs are never mutated and nothing is raised
for degenerate input. Entities without coordinates fall out of radius
results, entities without a price pass price bounds, and bounds that cannot
be parsed are ignored.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from marketplace.common.enums import SortMode
from marketplace.geo.distance import distance_km
from marketplace.geo.models import Coordinate
from marketplace.listings.models import Bound, FilterCriteria, ListableEntity, RankedEntity, SearchPage


def parse_bound(value: Bound) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def filter_by_radius(
    entities: Iterable[ListableEntity],
    origin: Coordinate,
    radius_km: float,
) -> List[RankedEntity]:
    ranked: List[RankedEntity] = []
    for entity in entities:
        if entity.coordinate is None:
            continue
        distance = distance_km(origin, entity.coordinate)
        if distance <= radius_km:
            ranked.append(RankedEntity(entity=entity, distance_km=distance))
    # sorted() is stable, so equal distances keep input order
    return sorted(ranked, key=lambda item: item.distance_km)


def apply_filters(
    entities: Iterable[ListableEntity],
    criteria: FilterCriteria,
    *,
    now: Optional[datetime] = None,
) -> List[RankedEntity]:
    """Run the search, narrowing and sort stages in order.

    When ``now`` is given the boosted sort uses the derived boost state
    (expired boosts count as unboosted) instead of the stored flag.
    """
    working = list(entities)

    query = (criteria.search_query or "").strip().lower()
    if query:
        working = [entity for entity in working if query in entity.searchable_text.lower()]

    if criteria.category:
        working = [entity for entity in working if entity.category == criteria.category]

    if criteria.job_type:
        working = [entity for entity in working if entity.job_type == criteria.job_type]

    if criteria.experience_level:
        working = [entity for entity in working if _matches_experience(entity, criteria.experience_level)]

    lower = parse_bound(criteria.price_min)
    if lower is not None:
        working = [entity for entity in working if _passes_lower(entity, lower)]
    upper = parse_bound(criteria.price_max)
    if upper is not None:
        working = [entity for entity in working if _passes_upper(entity, upper)]

    if criteria.city:
        working = [entity for entity in working if entity.city == criteria.city]
    if criteria.state:
        working = [entity for entity in working if entity.state == criteria.state]

    if criteria.origin is not None:
        ranked = filter_by_radius(working, criteria.origin, criteria.radius_km)
    else:
        ranked = [RankedEntity(entity=entity) for entity in working]

    return sort_ranked(ranked, criteria.sort_mode, now=now)


def sort_ranked(
    ranked: Sequence[RankedEntity],
    sort_mode: SortMode,
    *,
    now: Optional[datetime] = None,
) -> List[RankedEntity]:
    if sort_mode == SortMode.newest:
        return sorted(ranked, key=lambda item: item.entity.created_at, reverse=True)
    if sort_mode == SortMode.price_low:
        return sorted(ranked, key=lambda item: _price_key(item.entity))
    if sort_mode == SortMode.price_high:
        # reverse=True keeps equal keys in input order
        return sorted(ranked, key=lambda item: _price_key(item.entity), reverse=True)
    if sort_mode == SortMode.boosted:
        return sorted(ranked, key=lambda item: _boost_key(item.entity, now))
    return list(ranked)


def paginate(items: Sequence[RankedEntity], *, page: int, page_size: int) -> SearchPage:
    page = max(1, page)
    page_size = max(1, page_size)
    start = (page - 1) * page_size
    return SearchPage(
        items=list(items[start : start + page_size]),
        total=len(items),
        page=page,
        page_size=page_size,
    )


def _matches_experience(entity: ListableEntity, level: str) -> bool:
    """Exact level, or the level named in the title ("entry-level" in "Entry Level Designer")."""
    if entity.experience_level == level:
        return True
    return level.replace("-", " ").lower() in (entity.title or "").lower()


def _passes_lower(entity: ListableEntity, bound: float) -> bool:
    value = entity.price if entity.price is not None else entity.salary_min
    return value is None or value >= bound


def _passes_upper(entity: ListableEntity, bound: float) -> bool:
    value = entity.price if entity.price is not None else entity.salary_max
    return value is None or value <= bound


def _price_key(entity: ListableEntity) -> float:
    price = entity.sort_price
    return math.inf if price is None else price


def _boost_key(entity: ListableEntity, now: Optional[datetime]) -> tuple:
    boosted = entity.is_boosted_at(now) if now is not None else entity.is_boosted
    score = entity.boost_score if boosted else 0
    return (0 if boosted else 1, -score)
