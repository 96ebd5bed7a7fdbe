from typing import Any, Dict

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from marketplace.common.api import SCHEMA_VERSION, error_response, ok_response, schema_version_error
from marketplace.common.clock import Clock
from marketplace.common.enums import EntityType
from marketplace.geo.distance import format_distance
from marketplace.geo.models import Coordinate
from marketplace.listings.api_models import FilterCriteriaModel, ListingPublishRequestModel, ListingSearchRequestModel
from marketplace.listings.config import build_listing_search_service, load_listings_config, shared_listing_repository
from marketplace.listings.models import FilterCriteria, ListableEntity, RankedEntity

app = FastAPI(title="Marketplace Listings", docs_url=None, redoc_url=None)

_config = load_listings_config()
_clock = Clock()
_repository = shared_listing_repository()
_service, _ = build_listing_search_service(config=_config, repository=_repository, clock=_clock)


def _criteria_from_model(model: FilterCriteriaModel) -> FilterCriteria:
    origin = None
    if model.origin is not None:
        origin = Coordinate(latitude=model.origin.latitude, longitude=model.origin.longitude)
    return FilterCriteria(
        search_query=model.search_query,
        category=model.category,
        price_min=model.price_min,
        price_max=model.price_max,
        city=model.city,
        state=model.state,
        radius_km=model.radius_km or _config.default_radius_km,
        origin=origin,
        sort_mode=model.sort_mode,
        job_type=model.job_type,
        experience_level=model.experience_level,
    )


def _serialize_entity(entity: ListableEntity) -> Dict[str, Any]:
    return {
        "entity_id": entity.entity_id,
        "entity_type": entity.entity_type.value,
        "title": entity.title,
        "description": entity.description,
        "tags": list(entity.tags),
        "category": entity.category,
        "price": entity.price,
        "salary_min": entity.salary_min,
        "salary_max": entity.salary_max,
        "city": entity.city,
        "state": entity.state,
        "latitude": entity.coordinate.latitude if entity.coordinate else None,
        "longitude": entity.coordinate.longitude if entity.coordinate else None,
        "created_at": entity.created_at.isoformat(),
        "is_boosted": entity.is_boosted,
        "boost_score": entity.boost_score,
        "boost_expires_at": entity.boost_expires_at.isoformat() if entity.boost_expires_at else None,
        "job_type": entity.job_type,
        "experience_level": entity.experience_level,
    }


def _serialize_ranked(item: RankedEntity) -> Dict[str, Any]:
    payload = _serialize_entity(item.entity)
    payload["distance_km"] = item.distance_km
    payload["distance_display"] = format_distance(item.distance_km) if item.distance_km is not None else None
    return payload


@app.post("/listings/search")
def search_listings(request: ListingSearchRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    result = _service.search(
        request.entity_type,
        _criteria_from_model(request.criteria),
        page=request.page,
        page_size=request.page_size,
    )
    return ok_response(
        {
            "results": [_serialize_ranked(item) for item in result.items],
            "total": result.total,
            "page": result.page,
            "page_size": result.page_size,
            "has_next": result.has_next,
        }
    )


@app.get("/listings/{entity_type}/{entity_id}")
def fetch_listing(entity_type: EntityType, entity_id: str):
    entity = _repository.get(entity_type, entity_id)
    if entity is None:
        return JSONResponse(
            status_code=404,
            content=error_response("NOT_FOUND", f"{entity_type.value} not found"),
        )
    return ok_response(_serialize_entity(entity))


@app.post("/listings")
def publish_listing(request: ListingPublishRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    coordinate = None
    if request.coordinate is not None:
        coordinate = Coordinate(latitude=request.coordinate.latitude, longitude=request.coordinate.longitude)
    entity = _repository.publish(
        ListableEntity(
            entity_id=request.entity_id,
            entity_type=request.entity_type,
            title=request.title,
            created_at=_clock.now(),
            description=request.description,
            tags=list(request.tags),
            category=request.category,
            price=request.price,
            salary_min=request.salary_min,
            salary_max=request.salary_max,
            city=request.city,
            state=request.state,
            coordinate=coordinate,
            is_active=request.is_active,
            job_type=request.job_type,
            experience_level=request.experience_level,
        )
    )
    return ok_response(_serialize_entity(entity))
