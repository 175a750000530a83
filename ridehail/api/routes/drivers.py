"""
Driver endpoints
================

POST /api/v1/drivers/me/online        -- go online / offline
POST /api/v1/drivers/me/location      -- upload a position sample
GET  /api/v1/drivers/me/pending-rides -- open rides, nearest first
GET  /api/v1/drivers/me/active-ride   -- the ride currently bound to me
GET  /api/v1/drivers/me/earnings      -- today's completed-ride earnings
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import get_actor, get_db, get_feed
from ridehail.api.middleware import DEFAULT_LIMIT, LOCATION_LIMIT, limiter
from ridehail.api.schemas import (
    DriverStatusResponse,
    EarningsResponse,
    LocationSampleRequest,
    OnlineRequest,
    PendingRideResponse,
    RideResponse,
    TrackingResponse,
)
from ridehail.domain.entities import Actor
from ridehail.infrastructure.realtime import ChangeFeed
from ridehail.services.drivers import DriverService

router = APIRouter(prefix="/drivers/me", tags=["drivers"])


@router.post("/online", response_model=DriverStatusResponse, summary="Toggle online")
@limiter.limit(DEFAULT_LIMIT)
async def set_online(
    request: Request,
    body: OnlineRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await DriverService(db).set_online(actor, body.is_online)


@router.post(
    "/location",
    response_model=TrackingResponse,
    summary="Upload a position sample",
    description="Returns speed and ETA; out-of-order samples are skipped.",
)
@limiter.limit(LOCATION_LIMIT)
async def upload_location(
    request: Request,
    body: LocationSampleRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    update = await DriverService(db, feed=feed).record_location(
        actor,
        body.latitude,
        body.longitude,
        heading=body.heading,
        recorded_at=body.recorded_at,
    )
    if update is None:
        return TrackingResponse(accepted=False)
    return TrackingResponse(
        accepted=True,
        speed_kmh=update.speed_kmh,
        eta_minutes=update.eta_minutes,
        distance_to_target_km=update.distance_to_target_km,
    )


@router.get(
    "/pending-rides",
    response_model=list[PendingRideResponse],
    summary="Pending rides ordered by distance to pickup",
)
@limiter.limit(DEFAULT_LIMIT)
async def pending_rides(
    request: Request,
    declined: list[str] = Query([]),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    pool = await DriverService(db).pending_pool(actor, declined)
    return [
        PendingRideResponse(ride=RideResponse.from_model(r), distance_to_pickup_km=d)
        for r, d in pool
    ]


@router.get(
    "/active-ride",
    response_model=Optional[RideResponse],
    summary="Currently active ride, if any",
)
@limiter.limit(DEFAULT_LIMIT)
async def active_ride(
    request: Request,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    ride = await DriverService(db).active_ride(actor)
    return RideResponse.from_model(ride) if ride else None


@router.get("/earnings", response_model=EarningsResponse, summary="Today's earnings")
@limiter.limit(DEFAULT_LIMIT)
async def earnings(
    request: Request,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    result = await DriverService(db).earnings(actor)
    return EarningsResponse(total=result.total, rides=result.rides, since=result.since)
