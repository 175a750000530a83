"""
Geocoding proxy
===============

GET /api/v1/geocode/search?q=       -- address search, up to five results
GET /api/v1/geocode/reverse?lat=&lng= -- coordinates to a short address
"""

from fastapi import APIRouter, Depends, Query, Request

from ridehail.api.dependencies import get_geocoder
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import GeocodeResponse, ReverseGeocodeResponse
from ridehail.infrastructure.geocoding import GeocodingClient

router = APIRouter(prefix="/geocode", tags=["geocode"])


@router.get("/search", response_model=list[GeocodeResponse], summary="Search addresses")
@limiter.limit(DEFAULT_LIMIT)
async def search(
    request: Request,
    q: str = Query(..., max_length=200),
    geocoder: GeocodingClient = Depends(get_geocoder),
):
    results = await geocoder.search(q)
    return [GeocodeResponse(**r.model_dump()) for r in results]


@router.get("/reverse", response_model=ReverseGeocodeResponse, summary="Reverse geocode")
@limiter.limit(DEFAULT_LIMIT)
async def reverse(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    geocoder: GeocodingClient = Depends(get_geocoder),
):
    return ReverseGeocodeResponse(address=await geocoder.reverse(lat, lng))
