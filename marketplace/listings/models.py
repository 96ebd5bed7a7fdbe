from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from marketplace.common.enums import EntityType, SortMode
from marketplace.geo.models import Coordinate


Bound = Union[float, int, str, None]


@dataclass(frozen=True)
class ListableEntity:
    entity_id: str
    entity_type: EntityType
    title: str
    created_at: datetime
    description: str = ""
    tags: List[str] = field(default_factory=list)
    category: Optional[str] = None
    price: Optional[float] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    coordinate: Optional[Coordinate] = None
    is_boosted: bool = False
    boost_score: int = 0
    boost_expires_at: Optional[datetime] = None
    is_active: bool = True
    job_type: Optional[str] = None
    experience_level: Optional[str] = None

    @property
    def searchable_text(self) -> str:
        return " ".join(part for part in [self.title, self.description, *self.tags] if part)

    @property
    def sort_price(self) -> Optional[float]:
        return self.price if self.price is not None else self.salary_min

    def is_boosted_at(self, now: datetime) -> bool:
        if not self.is_boosted:
            return False
        return self.boost_expires_at is None or now <= self.boost_expires_at


@dataclass(frozen=True)
class FilterCriteria:
    search_query: str = ""
    category: Optional[str] = None
    price_min: Bound = None
    price_max: Bound = None
    city: Optional[str] = None
    state: Optional[str] = None
    radius_km: float = 50.0
    origin: Optional[Coordinate] = None
    sort_mode: SortMode = SortMode.newest
    job_type: Optional[str] = None
    experience_level: Optional[str] = None


@dataclass(frozen=True)
class RankedEntity:
    entity: ListableEntity
    distance_km: Optional[float] = None


@dataclass(frozen=True)
class SearchPage:
    items: List[RankedEntity]
    total: int
    page: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total
