from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field

from marketplace.common.enums import EntityType, SortMode
from marketplace.geo.api_models import CoordinateModel


class FilterCriteriaModel(BaseModel):
    search_query: str = ""
    category: Optional[str] = None
    price_min: Optional[Union[float, str]] = None
    price_max: Optional[Union[float, str]] = None
    city: Optional[str] = None
    state: Optional[str] = None
    radius_km: Optional[float] = Field(default=None, gt=0)
    origin: Optional[CoordinateModel] = None
    sort_mode: SortMode = SortMode.newest
    job_type: Optional[str] = None
    experience_level: Optional[str] = None


class ListingSearchRequestModel(BaseModel):
    schema_version: str
    entity_type: EntityType
    criteria: FilterCriteriaModel = Field(default_factory=FilterCriteriaModel)
    page: int = Field(default=1, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)


class ListingPublishRequestModel(BaseModel):
    schema_version: str
    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    salary_min: Optional[float] = Field(default=None, ge=0)
    salary_max: Optional[float] = Field(default=None, ge=0)
    city: Optional[str] = None
    state: Optional[str] = None
    coordinate: Optional[CoordinateModel] = None
    is_active: bool = True
    job_type: Optional[str] = None
    experience_level: Optional[str] = None
