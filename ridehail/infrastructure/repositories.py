"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Every ride status change goes through a
conditional ``UPDATE ... WHERE status = <expected>``; callers learn whether
they won from the affected row count, never from a read-then-write.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from .models import (
    DriverLocationModel,
    DriverModel,
    MessageModel,
    ProfileModel,
    RideModel,
)
from ridehail.domain.entities import DriverPosition, Location, Ride
from ridehail.domain.enums import ACTIVE_STATUSES, RideStatus


def ride_to_entity(model: RideModel) -> Ride:
    return Ride(
        id=model.id,
        customer_id=model.customer_id,
        driver_id=model.driver_id,
        pickup=Location(model.pickup_lat, model.pickup_lng),
        dropoff=Location(model.dropoff_lat, model.dropoff_lng),
        status=RideStatus(model.status),
        price=model.price or 0.0,
        distance_km=model.distance_km,
        duration_minutes=model.duration_minutes,
        promo_discount=model.promo_discount or 0.0,
        promo_type=model.promo_type,
        first_ride_discount=bool(model.first_ride_discount),
        cancellation_fee=model.cancellation_fee,
        created_at=model.created_at,
        accepted_at=model.accepted_at,
        started_at=model.started_at,
        completed_at=model.completed_at,
        cancelled_at=model.cancelled_at,
        scheduled_time=model.scheduled_time,
    )


def position_to_entity(model: DriverLocationModel) -> DriverPosition:
    return DriverPosition(
        driver_id=model.driver_id,
        latitude=model.latitude,
        longitude=model.longitude,
        speed=model.speed or 0.0,
        heading=model.heading or 0.0,
        updated_at=model.updated_at,
    )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_ride(self, **fields: Any) -> RideModel:
        ride = RideModel(**fields)
        self.session.add(ride)
        await self.session.flush()
        await self.session.refresh(ride)
        return ride

    async def get_by_id(self, ride_id: str, refresh: bool = False) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id, populate_existing=refresh)

    async def get_by_idempotency_key(self, key: str) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel).where(RideModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def list_for_customer(
        self, customer_id: str, statuses: Optional[Iterable[RideStatus]] = None
    ) -> list[RideModel]:
        query = select(RideModel).where(RideModel.customer_id == customer_id)
        if statuses:
            query = query.where(RideModel.status.in_(list(statuses)))
        result = await self.session.execute(
            query.order_by(RideModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_driver(
        self, driver_id: str, statuses: Optional[Iterable[RideStatus]] = None
    ) -> list[RideModel]:
        query = select(RideModel).where(RideModel.driver_id == driver_id)
        if statuses:
            query = query.where(RideModel.status.in_(list(statuses)))
        result = await self.session.execute(
            query.order_by(RideModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_active_for_driver(self, driver_id: str) -> Optional[RideModel]:
        rides = await self.list_for_driver(driver_id, ACTIVE_STATUSES)
        return rides[0] if rides else None

    async def get_pending_rides(self, now: datetime) -> list[RideModel]:
        """Open rides, oldest first; scheduled rides only once due."""
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.status == RideStatus.PENDING,
                or_(
                    RideModel.scheduled_time.is_(None),
                    RideModel.scheduled_time <= now,
                ),
            )
            .order_by(RideModel.created_at)
        )
        return list(result.scalars().all())

    async def get_expired_pending(self, cutoff: datetime) -> list[RideModel]:
        """Pending rides created (or scheduled for) before *cutoff*."""
        result = await self.session.execute(
            select(RideModel).where(
                RideModel.status == RideStatus.PENDING,
                or_(
                    and_(
                        RideModel.scheduled_time.is_(None),
                        RideModel.created_at < cutoff,
                    ),
                    RideModel.scheduled_time < cutoff,
                ),
            )
        )
        return list(result.scalars().all())

    async def has_open_first_ride_discount(self, customer_id: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideModel)
            .where(
                RideModel.customer_id == customer_id,
                RideModel.first_ride_discount.is_(True),
                RideModel.status != RideStatus.CANCELLED,
            )
        )
        return (result.scalar() or 0) > 0

    async def claim(self, ride_id: str, driver_id: str, now: datetime) -> bool:
        """
        Atomically attach *driver_id* to a still-pending ride.

        The same statement checks that the driver holds no active ride; the
        partial unique index ``uq_rides_one_active_per_driver`` backs this
        up when two claims by one driver commit at the same moment.
        """
        busy = aliased(RideModel)
        try:
            result = await self.session.execute(
                update(RideModel)
                .where(
                    RideModel.id == ride_id,
                    RideModel.status == RideStatus.PENDING,
                    RideModel.driver_id.is_(None),
                    ~select(busy.id)
                    .where(
                        busy.driver_id == driver_id,
                        busy.status.in_(list(ACTIVE_STATUSES)),
                    )
                    .exists(),
                )
                .values(
                    driver_id=driver_id,
                    status=RideStatus.ACCEPTED,
                    accepted_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            return False
        return result.rowcount == 1

    async def transition(
        self, ride_id: str, expected: RideStatus, updates: dict[str, Any]
    ) -> bool:
        """Apply *updates* only if the ride is still in *expected* status."""
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status == expected)
            .values(**updates)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def driver_earnings(
        self, driver_id: str, since: datetime
    ) -> tuple[float, int]:
        result = await self.session.execute(
            select(func.coalesce(func.sum(RideModel.price), 0.0), func.count())
            .where(
                RideModel.driver_id == driver_id,
                RideModel.status == RideStatus.COMPLETED,
                RideModel.completed_at >= since,
            )
        )
        total, count = result.one()
        return round(float(total), 2), int(count)


class ProfileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_or_create(self, user_id: str) -> ProfileModel:
        profile = await self.session.get(ProfileModel, user_id)
        if profile is None:
            profile = ProfileModel(
                user_id=user_id, loyalty_points=0, first_ride_used=False
            )
            self.session.add(profile)
            await self.session.flush()
        return profile

    async def award_loyalty_points(self, user_id: str, points: int) -> None:
        await self.get_or_create(user_id)
        await self.session.execute(
            update(ProfileModel)
            .where(ProfileModel.user_id == user_id)
            .values(loyalty_points=ProfileModel.loyalty_points + points)
            .execution_options(synchronize_session=False)
        )

    async def mark_first_ride_used(self, user_id: str) -> None:
        await self.session.execute(
            update(ProfileModel)
            .where(ProfileModel.user_id == user_id)
            .values(first_ride_used=True)
            .execution_options(synchronize_session=False)
        )


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: str) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def get_by_user_id(self, user_id: str) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel).where(DriverModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def count_online(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(DriverModel)
            .where(DriverModel.is_online.is_(True))
        )
        return result.scalar() or 0

    async def get_online_positions(self) -> list[DriverPosition]:
        """Last known position of every online driver that has one."""
        result = await self.session.execute(
            select(DriverLocationModel)
            .join(DriverModel, DriverModel.id == DriverLocationModel.driver_id)
            .where(DriverModel.is_online.is_(True))
        )
        return [position_to_entity(m) for m in result.scalars().all()]

    async def increment_total_rides(self, driver_id: str) -> None:
        await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(total_rides=DriverModel.total_rides + 1)
            .execution_options(synchronize_session=False)
        )


class DriverLocationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, driver_id: str, refresh: bool = False) -> Optional[DriverLocationModel]:
        return await self.session.get(
            DriverLocationModel, driver_id, populate_existing=refresh
        )

    async def get_position(self, driver_id: Optional[str]) -> Optional[DriverPosition]:
        if driver_id is None:
            return None
        row = await self.get(driver_id)
        return position_to_entity(row) if row else None

    async def upsert(
        self,
        driver_id: str,
        latitude: float,
        longitude: float,
        speed: float,
        heading: float,
        updated_at: datetime,
    ) -> Optional[DriverLocationModel]:
        """
        Store the driver's single row unless a newer position is already there.

        Returns None when the stored ``updated_at`` is not older than
        *updated_at* (a late sample handled by another process).
        """
        values = {
            "latitude": latitude,
            "longitude": longitude,
            "speed": speed,
            "heading": heading,
            "updated_at": updated_at,
        }
        result = await self.session.execute(
            update(DriverLocationModel)
            .where(
                DriverLocationModel.driver_id == driver_id,
                or_(
                    DriverLocationModel.updated_at.is_(None),
                    DriverLocationModel.updated_at < updated_at,
                ),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if await self.get(driver_id, refresh=True) is not None:
                return None
            self.session.add(DriverLocationModel(driver_id=driver_id, **values))
            try:
                await self.session.flush()
            except IntegrityError:
                # another process inserted the first row concurrently
                return None
        return await self.get(driver_id, refresh=True)


class MessageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride_id: str, sender_id: str, content: str) -> MessageModel:
        message = MessageModel(ride_id=ride_id, sender_id=sender_id, content=content)
        self.session.add(message)
        await self.session.flush()
        await self.session.refresh(message)
        return message

    async def list_for_ride(self, ride_id: str) -> list[MessageModel]:
        result = await self.session.execute(
            select(MessageModel)
            .where(MessageModel.ride_id == ride_id)
            .order_by(MessageModel.created_at, MessageModel.id)
        )
        return list(result.scalars().all())

    async def mark_read(
        self, ride_id: str, reader_id: str, read_at: datetime
    ) -> list[MessageModel]:
        """Stamp every unread message the reader did not send."""
        result = await self.session.execute(
            select(MessageModel).where(
                MessageModel.ride_id == ride_id,
                MessageModel.sender_id != reader_id,
                MessageModel.read_at.is_(None),
            )
        )
        unread = list(result.scalars().all())
        for message in unread:
            message.read_at = read_at
        await self.session.flush()
        return unread
