from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class CoordinateModel(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class LocationSearchRequestModel(BaseModel):
    schema_version: str
    query: str
    limit: Optional[int] = Field(default=None, ge=1, le=20)


class ReverseGeocodeRequestModel(BaseModel):
    schema_version: str
    coordinate: CoordinateModel


class DistanceRequestModel(BaseModel):
    schema_version: str
    origin: CoordinateModel
    destination: CoordinateModel
