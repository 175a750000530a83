"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ridehail.domain.enums import RideStatus


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    dropoff_lat: float = Field(..., ge=-90, le=90)
    dropoff_lng: float = Field(..., ge=-180, le=180)
    pickup_address: str = Field("", max_length=500)
    dropoff_address: str = Field("", max_length=500)
    distance_km: Optional[float] = Field(None, ge=0)
    duration_minutes: Optional[int] = Field(None, ge=0)
    scheduled_time: Optional[datetime] = None
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class RideAdvanceRequest(BaseModel):
    status: RideStatus


class OnlineRequest(BaseModel):
    is_online: bool


class LocationSampleRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    heading: float = Field(0.0, ge=0, lt=360)
    recorded_at: Optional[datetime] = None


class FindDriversRequest(BaseModel):
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    exclude_driver_ids: list[str] = []


class PriceQuoteRequest(BaseModel):
    distance_km: float = Field(..., ge=0)
    duration_minutes: int = Field(0, ge=0)
    pickup_address: str = ""
    dropoff_address: str = ""


class MessageCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: str
    customer_id: str
    driver_id: Optional[str] = None
    pickup_lat: float
    pickup_lng: float
    pickup_address: Optional[str] = None
    dropoff_lat: float
    dropoff_lng: float
    dropoff_address: Optional[str] = None
    status: RideStatus
    price: float
    charged_price: float = 0.0
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    promo_discount: float = 0.0
    promo_type: Optional[str] = None
    first_ride_discount: bool = False
    loyalty_points_earned: int = 0
    cancellation_fee: Optional[float] = None
    scheduled_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_model(cls, ride) -> RideResponse:
        response = cls.model_validate(ride)
        response.charged_price = round(
            max(0.0, response.price - (response.promo_discount or 0.0)), 2
        )
        return response


class PendingRideResponse(BaseModel):
    ride: RideResponse
    distance_to_pickup_km: Optional[float] = None


class CancellationFeeResponse(BaseModel):
    ride_id: str
    status: RideStatus
    fee: float
    distance_km: float


class DriverStatusResponse(BaseModel):
    id: str
    is_online: bool
    vehicle_model: Optional[str] = None
    vehicle_plate: Optional[str] = None
    rating: Optional[float] = None
    total_rides: int = 0

    model_config = {"from_attributes": True}


class TrackingResponse(BaseModel):
    accepted: bool
    speed_kmh: Optional[float] = None
    eta_minutes: Optional[int] = None
    distance_to_target_km: Optional[float] = None


class EarningsResponse(BaseModel):
    total: float
    rides: int
    since: datetime


class DriverCandidateResponse(BaseModel):
    driver_id: str
    latitude: float
    longitude: float
    distance_km: float


class FindDriversResponse(BaseModel):
    drivers: list[DriverCandidateResponse]
    total_online: int


class BreakdownResponse(BaseModel):
    base: float
    distance: float
    time: float
    fuel_surcharge: float


class PriceQuoteResponse(BaseModel):
    price: float
    breakdown: BreakdownResponse


class MessageResponse(BaseModel):
    id: str
    ride_id: str
    sender_id: str
    content: str
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MarkReadResponse(BaseModel):
    updated: int


class GeocodeResponse(BaseModel):
    latitude: float
    longitude: float
    address: str


class ReverseGeocodeResponse(BaseModel):
    address: str


class HealthResponse(BaseModel):
    status: str = "ok"
