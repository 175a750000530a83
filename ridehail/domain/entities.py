"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (pending -> accepted -> arriving -> in_progress -> completed, with
  cancellation from any non-terminal state) *and* who may trigger them.
- ``Actor`` is the explicit session context handed to every operation;
  there is no ambient "current user".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .distance import haversine_km
from .enums import RIDE_TRANSITIONS, ActorRole, RideStatus
from .exceptions import (
    InvalidStateTransition,
    NotAuthorizedError,
    RideValidationError,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def distance_km(self, other: Location) -> float:
        return haversine_km(
            self.latitude, self.longitude, other.latitude, other.longitude
        )


@dataclass(frozen=True)
class Actor:
    """Who is calling: a customer (by user id) or a driver (user + driver id)."""

    user_id: str
    role: ActorRole
    driver_id: Optional[str] = None

    @property
    def is_driver(self) -> bool:
        return self.role == ActorRole.DRIVER and self.driver_id is not None

    @property
    def is_customer(self) -> bool:
        return self.role == ActorRole.CUSTOMER


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: Optional[str] = None
    customer_id: str = ""
    driver_id: Optional[str] = None
    pickup: Location = field(default_factory=lambda: Location(0, 0))
    dropoff: Location = field(default_factory=lambda: Location(0, 0))
    status: RideStatus = RideStatus.PENDING
    price: float = 0.0
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    promo_discount: float = 0.0
    promo_type: Optional[str] = None
    first_ride_discount: bool = False
    cancellation_fee: Optional[float] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    scheduled_time: Optional[datetime] = None

    @property
    def route_km(self) -> float:
        """Total route length; the booked estimate wins over straight-line."""
        if self.distance_km:
            return self.distance_km
        return self.pickup.distance_km(self.dropoff)

    @property
    def charged_price(self) -> float:
        return round(max(0.0, self.price - (self.promo_discount or 0.0)), 2)

    def current_target(self) -> Optional[Location]:
        """Pickup while the driver approaches, dropoff while underway."""
        if self.status in (RideStatus.ACCEPTED, RideStatus.ARRIVING):
            return self.pickup
        if self.status == RideStatus.IN_PROGRESS:
            return self.dropoff
        return None

    def is_customer(self, actor: Actor) -> bool:
        return actor.is_customer and actor.user_id == self.customer_id

    def is_assigned_driver(self, actor: Actor) -> bool:
        return (
            actor.is_driver
            and self.driver_id is not None
            and actor.driver_id == self.driver_id
        )

    def is_party(self, actor: Actor) -> bool:
        return self.is_customer(actor) or self.is_assigned_driver(actor)

    def authorize(self, actor: Actor, new_status: RideStatus) -> None:
        """Raise unless *actor* may move this ride to *new_status* now."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )

        if new_status == RideStatus.ACCEPTED:
            if not actor.is_driver:
                raise NotAuthorizedError("Only drivers can claim rides")
            if self.driver_id is not None:
                raise InvalidStateTransition("Ride already has a driver")
            return

        if new_status == RideStatus.CANCELLED:
            if self.status == RideStatus.PENDING:
                if not self.is_customer(actor):
                    raise NotAuthorizedError(
                        "Only the customer can cancel a pending ride"
                    )
                return
            if not self.is_party(actor):
                raise NotAuthorizedError("Not a party to this ride")
            return

        # arriving / in_progress / completed are driver actions
        if self.driver_id is None:
            raise RideValidationError("Ride has no assigned driver")
        if not self.is_assigned_driver(actor):
            raise NotAuthorizedError("Only the assigned driver can do this")

    def transition_to(
        self,
        new_status: RideStatus,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Validate and apply a transition in memory.

        Returns the column updates the persistence layer must write
        conditionally on the prior status.
        """
        self.authorize(actor, new_status)
        now = now or utcnow()
        updates: dict[str, Any] = {"status": new_status}

        if new_status == RideStatus.ACCEPTED:
            updates["driver_id"] = actor.driver_id
            updates["accepted_at"] = now
        elif new_status == RideStatus.IN_PROGRESS:
            updates["started_at"] = now
        elif new_status == RideStatus.COMPLETED:
            updates["completed_at"] = now
        elif new_status == RideStatus.CANCELLED:
            updates["cancelled_at"] = now

        for key, value in updates.items():
            setattr(self, key, value)
        return updates

    def check_invariants(self) -> None:
        # cancelled rides may or may not have had a driver
        if self.status != RideStatus.CANCELLED and (
            (self.driver_id is None) != (self.status == RideStatus.PENDING)
        ):
            raise AssertionError(
                f"driver_id/status mismatch: {self.driver_id!r} / {self.status}"
            )
        if (self.completed_at is not None) != (
            self.status == RideStatus.COMPLETED
        ):
            raise AssertionError("completed_at must match completed status")
        if (self.cancelled_at is not None) != (
            self.status == RideStatus.CANCELLED
        ):
            raise AssertionError("cancelled_at must match cancelled status")


@dataclass
class DriverPosition:
    """Latest known position of one driver."""

    driver_id: str
    latitude: float
    longitude: float
    speed: float = 0.0
    heading: float = 0.0
    updated_at: Optional[datetime] = None

    @property
    def location(self) -> Location:
        return Location(self.latitude, self.longitude)
