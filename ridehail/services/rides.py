"""
Core ride lifecycle operations.

Booking, claiming, advancing and cancelling rides.  Every operation takes
the calling ``Actor`` explicitly, validates with the domain entity before
any write, persists through a conditional UPDATE on the expected prior
status, commits, and only then publishes the new row on the change feed.

Losing a race (zero rows affected) raises ``RideNotAvailableError``; the
caller's view is left untouched and nothing is retried.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.config import settings
from ridehail.domain.cancellation import CancellationQuote, FeePolicy
from ridehail.domain.distance import estimate_eta_minutes, haversine_km
from ridehail.domain.entities import Actor, Location, utcnow
from ridehail.domain.enums import ChangeType, RideStatus
from ridehail.domain.exceptions import (
    DriverNotAvailableError,
    InvalidStateTransition,
    NotAuthorizedError,
    RideNotAvailableError,
    RideNotFoundError,
    RideValidationError,
)
from ridehail.domain.pricing import PricingEngine
from ridehail.infrastructure.models import RideModel
from ridehail.infrastructure.pricing_client import PricingClient
from ridehail.infrastructure.realtime import ChangeFeed, row_to_dict
from ridehail.infrastructure.repositories import (
    DriverLocationRepository,
    DriverRepository,
    ProfileRepository,
    RideRepository,
    ride_to_entity,
)

logger = logging.getLogger(__name__)

DRIVER_STEPS = (RideStatus.ARRIVING, RideStatus.IN_PROGRESS, RideStatus.COMPLETED)


@dataclass
class BookingRequest:
    pickup: Location
    dropoff: Location
    pickup_address: str = ""
    dropoff_address: str = ""
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    idempotency_key: Optional[str] = None


def default_pricing_engine() -> PricingEngine:
    return PricingEngine(
        base_fare=settings.base_fare,
        rate_per_km=settings.rate_per_km,
        first_ride_max_price=settings.first_ride_max_price,
        promo_percent=settings.promo_percent,
        promo_weekdays=settings.promo_weekdays,
    )


def default_fee_policy() -> FeePolicy:
    return FeePolicy(
        near_pickup_km=settings.fee_near_pickup_km,
        baseline_km=settings.fee_baseline_km,
        rate_per_km=settings.fee_rate_per_km,
        arriving_share=settings.fee_arriving_share,
        in_progress_floor=settings.fee_in_progress_floor,
    )


def loyalty_points_for(price: float) -> int:
    """floor(price x 10); the rounding guards against 18.5 * 10 = 184.999..."""
    return math.floor(round(price * settings.loyalty_points_per_euro, 6))


class RideService:
    def __init__(
        self,
        session: AsyncSession,
        feed: Optional[ChangeFeed] = None,
        pricing: Optional[PricingClient] = None,
        fee_policy: Optional[FeePolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.feed = feed
        self.pricing = pricing or PricingClient(
            default_pricing_engine(),
            url=settings.pricing_url,
            timeout=settings.pricing_timeout_seconds,
        )
        self.fee_policy = fee_policy or default_fee_policy()
        self.clock = clock
        self.rides = RideRepository(session)
        self.profiles = ProfileRepository(session)
        self.drivers = DriverRepository(session)
        self.locations = DriverLocationRepository(session)

    # ── helpers ───────────────────────────────────────────────────────

    async def _load(self, ride_id: str) -> RideModel:
        ride = await self.rides.get_by_id(ride_id, refresh=True)
        if ride is None:
            raise RideNotFoundError(f"Ride {ride_id} not found")
        return ride

    async def _commit_and_publish(self, ride: RideModel, change: ChangeType) -> RideModel:
        row = row_to_dict(ride)
        await self.session.commit()
        if self.feed is not None:
            await self.feed.publish("rides", change, new=row)
        return ride

    async def _write(
        self, ride: RideModel, expected: RideStatus, updates: dict
    ) -> RideModel:
        updates["updated_at"] = self.clock()
        if not await self.rides.transition(ride.id, expected, updates):
            await self.session.rollback()
            raise RideNotAvailableError()
        return await self._load(ride.id)

    # ── queries ───────────────────────────────────────────────────────

    async def get(self, actor: Actor, ride_id: str) -> RideModel:
        """Customers see their rides, drivers their assigned ones plus the pool."""
        ride = await self._load(ride_id)
        entity = ride_to_entity(ride)
        if entity.is_party(actor):
            return ride
        if actor.is_driver and entity.status == RideStatus.PENDING:
            return ride
        raise RideNotFoundError(f"Ride {ride_id} not found")

    async def list_for(
        self, actor: Actor, statuses: Optional[list[RideStatus]] = None
    ) -> list[RideModel]:
        if actor.is_driver:
            return await self.rides.list_for_driver(actor.driver_id, statuses)
        return await self.rides.list_for_customer(actor.user_id, statuses)

    async def cancellation_quote(self, actor: Actor, ride_id: str) -> CancellationQuote:
        ride = await self.get(actor, ride_id)
        entity = ride_to_entity(ride)
        position = await self.locations.get_position(entity.driver_id)
        return self.fee_policy.quote(
            entity, position.location if position else None
        )

    # ── commands ──────────────────────────────────────────────────────

    async def book(self, actor: Actor, request: BookingRequest) -> RideModel:
        if not actor.is_customer:
            raise NotAuthorizedError("Only customers can book rides")

        if request.idempotency_key:
            existing = await self.rides.get_by_idempotency_key(request.idempotency_key)
            if existing is not None:
                if existing.customer_id != actor.user_id:
                    raise RideValidationError("Idempotency key already used")
                return existing

        now = self.clock()
        scheduled = request.scheduled_time
        if scheduled is not None:
            if scheduled.tzinfo is None:
                scheduled = scheduled.replace(tzinfo=timezone.utc)
            if scheduled <= now:
                raise RideValidationError("Scheduled time must be in the future")

        distance_km = request.distance_km
        if distance_km is None:
            distance_km = haversine_km(
                request.pickup.latitude,
                request.pickup.longitude,
                request.dropoff.latitude,
                request.dropoff.longitude,
            )
        distance_km = round(distance_km, 2)
        duration = request.duration_minutes
        if duration is None:
            duration = estimate_eta_minutes(distance_km, settings.eta_minutes_per_km)

        quote = await self.pricing.quote(
            distance_km, duration, request.pickup_address, request.dropoff_address
        )

        profile = await self.profiles.get_or_create(actor.user_id)
        eligible = not profile.first_ride_used and not (
            await self.rides.has_open_first_ride_discount(actor.user_id)
        )
        booking = self.pricing.engine.apply_discount(quote.price, eligible, now.date())

        ride = await self.rides.create_ride(
            customer_id=actor.user_id,
            pickup_lat=request.pickup.latitude,
            pickup_lng=request.pickup.longitude,
            pickup_address=request.pickup_address or None,
            dropoff_lat=request.dropoff.latitude,
            dropoff_lng=request.dropoff.longitude,
            dropoff_address=request.dropoff_address or None,
            status=RideStatus.PENDING,
            price=booking.price,
            distance_km=distance_km,
            duration_minutes=duration,
            promo_discount=booking.promo_discount,
            promo_type=booking.promo_type.value if booking.promo_type else None,
            first_ride_discount=booking.first_ride_discount,
            scheduled_time=scheduled,
            idempotency_key=request.idempotency_key,
            updated_at=now,
        )
        logger.info(
            "Ride %s booked by %s: %.2f EUR (%s, discount %.2f)",
            ride.id,
            actor.user_id,
            booking.price,
            quote.source,
            booking.promo_discount,
        )
        return await self._commit_and_publish(ride, ChangeType.INSERT)

    async def claim(self, actor: Actor, ride_id: str) -> RideModel:
        """First driver whose conditional UPDATE lands wins the ride."""
        if not actor.is_driver:
            raise NotAuthorizedError("Only drivers can claim rides")

        driver = await self.drivers.get_by_id(actor.driver_id)
        if driver is None or not driver.is_online:
            raise DriverNotAvailableError("Driver must be online to claim rides")
        # early, friendlier answer; the claim itself re-checks atomically
        if await self.rides.get_active_for_driver(actor.driver_id) is not None:
            raise DriverNotAvailableError("Driver already has an active ride")

        ride = await self._load(ride_id)
        if RideStatus(ride.status) != RideStatus.PENDING:
            raise RideNotAvailableError()
        ride_to_entity(ride).authorize(actor, RideStatus.ACCEPTED)

        now = self.clock()
        if not await self.rides.claim(ride_id, actor.driver_id, now):
            await self.session.rollback()
            if await self.rides.get_active_for_driver(actor.driver_id) is not None:
                logger.info(
                    "Driver %s took another ride before claiming %s",
                    actor.driver_id,
                    ride_id,
                )
                raise DriverNotAvailableError("Driver already has an active ride")
            logger.info("Driver %s lost the claim on ride %s", actor.driver_id, ride_id)
            raise RideNotAvailableError()

        ride = await self._load(ride_id)
        logger.info("Ride %s accepted by driver %s", ride_id, actor.driver_id)
        return await self._commit_and_publish(ride, ChangeType.UPDATE)

    async def advance(
        self, actor: Actor, ride_id: str, new_status: RideStatus
    ) -> RideModel:
        """Driver-driven step: arriving, in_progress or completed."""
        if new_status not in DRIVER_STEPS:
            raise InvalidStateTransition(
                f"{new_status.value} is not a driver step"
            )

        ride = await self._load(ride_id)
        entity = ride_to_entity(ride)
        expected = entity.status
        updates = entity.transition_to(new_status, actor, self.clock())

        if new_status == RideStatus.COMPLETED:
            updates["loyalty_points_earned"] = loyalty_points_for(entity.price)

        ride = await self._write(ride, expected, updates)

        if new_status == RideStatus.COMPLETED:
            await self.profiles.award_loyalty_points(
                entity.customer_id, ride.loyalty_points_earned
            )
            if entity.first_ride_discount:
                await self.profiles.mark_first_ride_used(entity.customer_id)
            await self.drivers.increment_total_rides(entity.driver_id)

        logger.info(
            "Ride %s: %s -> %s by %s",
            ride_id,
            expected.value,
            new_status.value,
            actor.user_id,
        )
        return await self._commit_and_publish(ride, ChangeType.UPDATE)

    async def cancel(self, actor: Actor, ride_id: str) -> RideModel:
        ride = await self._load(ride_id)
        entity = ride_to_entity(ride)
        expected = entity.status
        entity.authorize(actor, RideStatus.CANCELLED)

        position = await self.locations.get_position(entity.driver_id)
        quote = self.fee_policy.quote(entity, position.location if position else None)

        updates = entity.transition_to(RideStatus.CANCELLED, actor, self.clock())
        updates["cancellation_fee"] = quote.fee
        updates["distance_at_cancel_km"] = quote.distance_km
        ride = await self._write(ride, expected, updates)

        logger.info(
            "Ride %s cancelled from %s by %s (%s), fee %.2f",
            ride_id,
            expected.value,
            actor.user_id,
            actor.role.value,
            quote.fee,
        )
        return await self._commit_and_publish(ride, ChangeType.UPDATE)

    async def expire_stale(self, ttl_minutes: int) -> int:
        """Cancel rides nobody claimed in time.  Returns how many were expired."""
        if ttl_minutes <= 0:
            return 0
        now = self.clock()
        cutoff = now - timedelta(minutes=ttl_minutes)
        expired = 0
        for ride in await self.rides.get_expired_pending(cutoff):
            updates = {
                "status": RideStatus.CANCELLED,
                "cancelled_at": now,
                "cancellation_fee": 0.0,
                "updated_at": now,
            }
            if not await self.rides.transition(ride.id, RideStatus.PENDING, updates):
                continue  # claimed or cancelled meanwhile
            ride = await self._load(ride.id)
            await self._commit_and_publish(ride, ChangeType.UPDATE)
            expired += 1
        if expired:
            logger.info("Expired %d pending rides older than %d min", expired, ttl_minutes)
        return expired
