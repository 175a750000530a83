"""Driver-side operations: availability, location samples, pending pool, earnings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.config import settings
from ridehail.domain.entities import Actor, Location, utcnow
from ridehail.domain.enums import ChangeType
from ridehail.domain.exceptions import NotAuthorizedError, RideValidationError
from ridehail.domain.matching import (
    DriverCandidate,
    find_nearby_drivers,
    order_by_distance,
)
from ridehail.domain.tracking import LocationSample, LocationTracker, TrackingUpdate
from ridehail.infrastructure.models import DriverModel, RideModel
from ridehail.infrastructure.realtime import ChangeFeed, row_to_dict
from ridehail.infrastructure.repositories import (
    DriverLocationRepository,
    DriverRepository,
    RideRepository,
    ride_to_entity,
)

logger = logging.getLogger(__name__)

# Shared by every request in this process; only the latest sample per driver
tracker = LocationTracker(minutes_per_km=settings.eta_minutes_per_km)


@dataclass
class Earnings:
    total: float
    rides: int
    since: datetime


def _require_driver(actor: Actor) -> str:
    if not actor.is_driver:
        raise NotAuthorizedError("Driver role required")
    return actor.driver_id


class DriverService:
    def __init__(
        self,
        session: AsyncSession,
        feed: Optional[ChangeFeed] = None,
        location_tracker: Optional[LocationTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.feed = feed
        self.tracker = location_tracker or tracker
        self.clock = clock
        self.drivers = DriverRepository(session)
        self.locations = DriverLocationRepository(session)
        self.rides = RideRepository(session)

    async def _driver(self, actor: Actor) -> DriverModel:
        driver = await self.drivers.get_by_id(_require_driver(actor))
        if driver is None:
            raise NotAuthorizedError("Unknown driver")
        return driver

    async def set_online(self, actor: Actor, is_online: bool) -> DriverModel:
        driver = await self._driver(actor)
        driver.is_online = is_online
        if not is_online:
            self.tracker.forget(driver.id)
        await self.session.commit()
        logger.info("Driver %s is now %s", driver.id, "online" if is_online else "offline")
        return driver

    async def active_ride(self, actor: Actor) -> Optional[RideModel]:
        return await self.rides.get_active_for_driver(_require_driver(actor))

    async def record_location(
        self,
        actor: Actor,
        latitude: float,
        longitude: float,
        heading: float = 0.0,
        recorded_at: Optional[datetime] = None,
    ) -> Optional[TrackingUpdate]:
        """
        Ingest one position sample.

        Returns None when the sample was skipped: its timestamp does not
        advance past the previous one, or a newer position was stored in the
        meantime.  The stored row and the tracker are then left alone.
        """
        driver_id = _require_driver(actor)
        recorded_at = recorded_at or self.clock()
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)
        recorded_at = recorded_at.astimezone(timezone.utc)

        stored = await self.locations.get(driver_id, refresh=True)
        if stored is not None and stored.updated_at is not None:
            updated = stored.updated_at
            if updated.tzinfo is None:
                updated = updated.replace(tzinfo=timezone.utc)
            self.tracker.prime(
                LocationSample(
                    driver_id=driver_id,
                    latitude=stored.latitude,
                    longitude=stored.longitude,
                    recorded_at=updated,
                )
            )

        ride = await self.rides.get_active_for_driver(driver_id)
        target = ride_to_entity(ride).current_target() if ride else None

        sample = LocationSample(
            driver_id=driver_id,
            latitude=latitude,
            longitude=longitude,
            recorded_at=recorded_at,
            heading=heading,
        )
        update = self.tracker.measure(sample, target)
        if update is None:
            logger.debug("Skipped out-of-order sample for driver %s", driver_id)
            return None

        change = ChangeType.INSERT if stored is None else ChangeType.UPDATE
        row = await self.locations.upsert(
            driver_id,
            latitude,
            longitude,
            speed=update.speed_kmh or 0.0,
            heading=heading,
            updated_at=recorded_at,
        )
        if row is None:
            await self.session.rollback()
            logger.debug("Newer position already stored for driver %s", driver_id)
            return None
        data = row_to_dict(row)
        await self.session.commit()
        self.tracker.remember(update)
        if self.feed is not None:
            await self.feed.publish("driver_locations", change, new=data)
        return update

    async def pending_pool(
        self, actor: Actor, declined: Iterable[str] = ()
    ) -> list[tuple[RideModel, Optional[float]]]:
        """Open rides for this driver, nearest pickup first, minus declined ones."""
        driver_id = _require_driver(actor)
        if await self.rides.get_active_for_driver(driver_id) is not None:
            return []

        skip = set(declined)
        pending = [
            r for r in await self.rides.get_pending_rides(self.clock()) if r.id not in skip
        ]
        position = await self.locations.get_position(driver_id)
        if position is None:
            return [(r, None) for r in pending]

        ranked = order_by_distance(
            position.location, pending, lambda r: Location(r.pickup_lat, r.pickup_lng)
        )
        return [(r, round(d, 2)) for r, d in ranked]

    async def earnings(self, actor: Actor, since: Optional[datetime] = None) -> Earnings:
        driver_id = _require_driver(actor)
        if since is None:
            since = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        total, count = await self.rides.driver_earnings(driver_id, since)
        return Earnings(total=total, rides=count, since=since)


class DispatchService:
    def __init__(self, session: AsyncSession):
        self.drivers = DriverRepository(session)

    async def find_drivers(
        self,
        pickup_lat: float,
        pickup_lng: float,
        exclude_driver_ids: Iterable[str] = (),
    ) -> tuple[list[DriverCandidate], int]:
        if pickup_lat is None or pickup_lng is None:
            raise RideValidationError("pickup_lat and pickup_lng are required")
        positions = await self.drivers.get_online_positions()
        total_online = await self.drivers.count_online()
        candidates = find_nearby_drivers(
            Location(pickup_lat, pickup_lng),
            positions,
            exclude_driver_ids,
            radii_km=settings.dispatch_radii_km,
            limit=settings.dispatch_max_drivers,
        )
        return candidates, total_online
