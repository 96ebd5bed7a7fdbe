from __future__ import annotations

from pydantic import BaseModel, Field

from marketplace.common.enums import EntityType


class BoostPurchaseRequestModel(BaseModel):
    schema_version: str
    user_id: str
    entity_type: EntityType
    entity_id: str
    duration_days: int


class CreditPurchaseRequestModel(BaseModel):
    schema_version: str
    user_id: str
    package_id: str


class CreditGrantRequestModel(BaseModel):
    schema_version: str
    user_id: str
    amount: int = Field(gt=0)
    description: str = "Admin grant"


class BoostEndRequestModel(BaseModel):
    schema_version: str
    entity_type: EntityType
    entity_id: str


class BoostExpireRequestModel(BaseModel):
    schema_version: str
