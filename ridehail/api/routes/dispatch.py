"""
Dispatch and pricing endpoints
==============================

POST /api/v1/dispatch/find-drivers -- nearest online drivers for a pickup
POST /api/v1/pricing/quote         -- base price (remote, local fallback)
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import get_actor, get_db
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import (
    BreakdownResponse,
    DriverCandidateResponse,
    FindDriversRequest,
    FindDriversResponse,
    PriceQuoteRequest,
    PriceQuoteResponse,
)
from ridehail.config import settings
from ridehail.domain.entities import Actor
from ridehail.infrastructure.pricing_client import PricingClient
from ridehail.services.drivers import DispatchService
from ridehail.services.rides import default_pricing_engine

router = APIRouter(tags=["dispatch"])


def get_pricing_client() -> PricingClient:
    return PricingClient(
        default_pricing_engine(),
        url=settings.pricing_url,
        timeout=settings.pricing_timeout_seconds,
    )


@router.post(
    "/dispatch/find-drivers",
    response_model=FindDriversResponse,
    summary="Find nearby online drivers",
    description=(
        "Searches within 5 km, widens to 15 km, and finally falls back to "
        "every online driver.  At most five are returned, nearest first."
    ),
)
@limiter.limit(DEFAULT_LIMIT)
async def find_drivers(
    request: Request,
    body: FindDriversRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    candidates, total_online = await DispatchService(db).find_drivers(
        body.pickup_lat, body.pickup_lng, body.exclude_driver_ids
    )
    return FindDriversResponse(
        drivers=[
            DriverCandidateResponse(
                driver_id=c.driver_id,
                latitude=c.latitude,
                longitude=c.longitude,
                distance_km=round(c.distance_km, 2),
            )
            for c in candidates
        ],
        total_online=total_online,
    )


@router.post("/pricing/quote", response_model=PriceQuoteResponse, summary="Quote a base price")
@limiter.limit(DEFAULT_LIMIT)
async def quote_price(
    request: Request,
    body: PriceQuoteRequest,
    pricing: PricingClient = Depends(get_pricing_client),
):
    quote = await pricing.quote(
        body.distance_km,
        body.duration_minutes,
        body.pickup_address,
        body.dropoff_address,
    )
    b = quote.breakdown
    return PriceQuoteResponse(
        price=quote.price,
        breakdown=BreakdownResponse(
            base=b.base, distance=b.distance, time=b.time, fuel_surcharge=b.fuel_surcharge
        ),
    )
