"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``profiles``          -- customer-side user data (loyalty, first-ride flag)
* ``drivers``           -- driver identity, online flag, vehicle, counters
* ``driver_locations``  -- one row per driver, overwritten in place
* ``rides``             -- ride requests and their lifecycle
* ``messages``          -- per-ride chat, append-only

Indexes
-------
* **B-Tree** on ``rides.status``, ``rides.customer_id``, ``rides.driver_id``
  and ``drivers.is_online`` for the pending pool, "my rides" and dispatch
  look-ups.
* **Unique** on ``driver_locations.driver_id`` enforces a single live
  position per driver; ``rides.idempotency_key`` prevents double booking.
* **Partial unique** on ``rides.driver_id`` over active statuses: a driver
  holds at most one accepted, arriving or in-progress ride.
"""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)

from .database import Base
from ridehail.domain.enums import RideStatus


ACTIVE_RIDE_CLAUSE = "status IN ('accepted', 'arriving', 'in_progress')"


def _uuid() -> str:
    return str(uuid.uuid4())


class ProfileModel(Base):
    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True, default=_uuid)
    full_name = Column(String(120), nullable=True)
    loyalty_points = Column(Integer, default=0, nullable=False)
    first_ride_used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), unique=True, nullable=False)
    vehicle_model = Column(String(120), nullable=True)
    vehicle_plate = Column(String(20), nullable=True)
    is_online = Column(Boolean, default=False, nullable=False)
    rating = Column(Float, default=5.0)
    total_rides = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_drivers_online", "is_online"),)


class DriverLocationModel(Base):
    __tablename__ = "driver_locations"

    driver_id = Column(String(36), ForeignKey("drivers.id"), primary_key=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    speed = Column(Float, default=0.0)
    heading = Column(Float, default=0.0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(Text, nullable=True)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    dropoff_address = Column(Text, nullable=True)

    status = Column(
        Enum(
            RideStatus,
            name="ridestatus",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=RideStatus.PENDING,
        nullable=False,
    )

    # Booking-time commercials; never recomputed afterwards
    price = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    promo_discount = Column(Float, default=0.0, nullable=False)
    promo_type = Column(String(20), nullable=True)
    first_ride_discount = Column(Boolean, default=False, nullable=False)
    loyalty_points_earned = Column(Integer, default=0, nullable=False)

    cancellation_fee = Column(Float, nullable=True)
    distance_at_cancel_km = Column(Float, nullable=True)
    idempotency_key = Column(String(64), unique=True, nullable=True)

    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "(status = 'pending' AND driver_id IS NULL) "
            "OR (status = 'cancelled') "
            "OR (status <> 'pending' AND driver_id IS NOT NULL)",
            name="ck_rides_driver_matches_status",
        ),
        Index("idx_rides_status", "status"),
        Index("idx_rides_customer", "customer_id"),
        Index("idx_rides_driver", "driver_id"),
        # at most one accepted / arriving / in_progress ride per driver
        Index(
            "uq_rides_one_active_per_driver",
            "driver_id",
            unique=True,
            postgresql_where=text(ACTIVE_RIDE_CLAUSE),
            sqlite_where=text(ACTIVE_RIDE_CLAUSE),
        ),
    )


class MessageModel(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False)
    sender_id = Column(String(36), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    read_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_messages_ride", "ride_id"),)
