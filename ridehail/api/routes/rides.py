"""
Ride endpoints
==============

POST /api/v1/rides                            -- book a ride (202 Accepted)
GET  /api/v1/rides                            -- the caller's rides
GET  /api/v1/rides/{ride_id}                  -- one ride
GET  /api/v1/rides/{ride_id}/cancellation-fee -- fee if cancelled now
POST /api/v1/rides/{ride_id}/claim            -- driver claims a pending ride
POST /api/v1/rides/{ride_id}/advance          -- driver moves the ride forward
POST /api/v1/rides/{ride_id}/cancel           -- customer or driver cancels
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import get_actor, get_db, get_feed
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import (
    CancellationFeeResponse,
    RideAdvanceRequest,
    RideCreateRequest,
    RideResponse,
)
from ridehail.domain.entities import Actor, Location
from ridehail.domain.enums import RideStatus
from ridehail.infrastructure.realtime import ChangeFeed
from ridehail.services.rides import BookingRequest, RideService

router = APIRouter(prefix="/rides", tags=["rides"])


def _service(db: AsyncSession, feed: ChangeFeed) -> RideService:
    return RideService(db, feed=feed)


@router.post(
    "",
    status_code=202,
    response_model=RideResponse,
    summary="Book a ride",
    responses={202: {"description": "Ride created; dispatch is async."}},
)
@limiter.limit(DEFAULT_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    ride = await _service(db, feed).book(
        actor,
        BookingRequest(
            pickup=Location(body.pickup_lat, body.pickup_lng),
            dropoff=Location(body.dropoff_lat, body.dropoff_lng),
            pickup_address=body.pickup_address,
            dropoff_address=body.dropoff_address,
            distance_km=body.distance_km,
            duration_minutes=body.duration_minutes,
            scheduled_time=body.scheduled_time,
            idempotency_key=body.idempotency_key,
        ),
    )
    return RideResponse.from_model(ride)


@router.get("", response_model=list[RideResponse], summary="List my rides")
@limiter.limit(DEFAULT_LIMIT)
async def list_rides(
    request: Request,
    status: Optional[list[RideStatus]] = Query(None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    rides = await _service(db, feed).list_for(actor, status)
    return [RideResponse.from_model(r) for r in rides]


@router.get("/{ride_id}", response_model=RideResponse, summary="Get one ride")
@limiter.limit(DEFAULT_LIMIT)
async def get_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    return RideResponse.from_model(await _service(db, feed).get(actor, ride_id))


@router.get(
    "/{ride_id}/cancellation-fee",
    response_model=CancellationFeeResponse,
    summary="Preview the fee for cancelling now",
)
@limiter.limit(DEFAULT_LIMIT)
async def cancellation_fee(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    service = _service(db, feed)
    ride = await service.get(actor, ride_id)
    quote = await service.cancellation_quote(actor, ride_id)
    return CancellationFeeResponse(
        ride_id=ride.id,
        status=ride.status,
        fee=quote.fee,
        distance_km=quote.distance_km,
    )


@router.post(
    "/{ride_id}/claim",
    response_model=RideResponse,
    summary="Claim a pending ride",
    description=(
        "Atomic: succeeds for exactly one driver.  Everyone else gets "
        "409 'Ride no longer available'."
    ),
)
@limiter.limit(DEFAULT_LIMIT)
async def claim_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    return RideResponse.from_model(await _service(db, feed).claim(actor, ride_id))


@router.post(
    "/{ride_id}/advance",
    response_model=RideResponse,
    summary="Advance a ride (arriving, in_progress, completed)",
)
@limiter.limit(DEFAULT_LIMIT)
async def advance_ride(
    request: Request,
    ride_id: str,
    body: RideAdvanceRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    ride = await _service(db, feed).advance(actor, ride_id, body.status)
    return RideResponse.from_model(ride)


@router.post(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Pending rides: customer only, free.  Accepted, arriving or "
        "in-progress rides: customer or assigned driver, fee recorded."
    ),
)
@limiter.limit(DEFAULT_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    return RideResponse.from_model(await _service(db, feed).cancel(actor, ride_id))
