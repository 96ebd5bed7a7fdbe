from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from marketplace.common.api import SCHEMA_VERSION, error_response, ok_response, schema_version_error
from marketplace.geo.api_models import (
    CoordinateModel,
    DistanceRequestModel,
    LocationSearchRequestModel,
    ReverseGeocodeRequestModel,
)
from marketplace.geo.cities import MAJOR_CITIES
from marketplace.geo.config import build_location_provider, load_geo_config
from marketplace.geo.distance import distance_km, format_distance
from marketplace.geo.models import Coordinate, GeoError, LocationMatch

app = FastAPI(title="Marketplace Geo", docs_url=None, redoc_url=None)

_config = load_geo_config()
_provider = build_location_provider(config=_config)


def _coordinate(model: CoordinateModel) -> Coordinate:
    return Coordinate(latitude=model.latitude, longitude=model.longitude)


def _serialize_match(match: Optional[LocationMatch]) -> Optional[Dict[str, Any]]:
    if match is None:
        return None
    return {
        "latitude": match.coordinate.latitude,
        "longitude": match.coordinate.longitude,
        "label": match.label,
        "city": match.city,
        "state": match.state,
        "country": match.country,
    }


@app.get("/geo/cities")
def list_cities():
    return ok_response(
        {
            "cities": [
                {
                    "name": city.name,
                    "state": city.state,
                    "latitude": city.coordinate.latitude,
                    "longitude": city.coordinate.longitude,
                }
                for city in MAJOR_CITIES
            ]
        }
    )


@app.post("/geo/search")
def search_location(request: LocationSearchRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    try:
        matches = _provider.search(request.query, limit=request.limit or _config.search_limit)
    except GeoError as exc:
        return JSONResponse(status_code=502, content=error_response(exc.code, str(exc), exc.details))
    return ok_response({"results": [_serialize_match(match) for match in matches]})


@app.post("/geo/reverse")
def reverse_geocode(request: ReverseGeocodeRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    try:
        match = _provider.reverse(_coordinate(request.coordinate))
    except GeoError as exc:
        return JSONResponse(status_code=502, content=error_response(exc.code, str(exc), exc.details))
    return ok_response({"result": _serialize_match(match)})


@app.post("/geo/distance")
def measure_distance(request: DistanceRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    km = distance_km(_coordinate(request.origin), _coordinate(request.destination))
    return ok_response({"distance_km": km, "display": format_distance(km)})
