"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ARRIVING = "arriving"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ActorRole(str, enum.Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"


class PromoType(str, enum.Enum):
    FIRST_RIDE = "first_ride"
    DAY_PROMO = "day_promo"


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {RideStatus.ACCEPTED, RideStatus.CANCELLED},
    RideStatus.ACCEPTED: {RideStatus.ARRIVING, RideStatus.CANCELLED},
    RideStatus.ARRIVING: {RideStatus.IN_PROGRESS, RideStatus.CANCELLED},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

# Statuses in which a driver is bound to the ride
ACTIVE_STATUSES: frozenset[RideStatus] = frozenset(
    {RideStatus.ACCEPTED, RideStatus.ARRIVING, RideStatus.IN_PROGRESS}
)

# Position along the lifecycle, used to order competing row images
LIFECYCLE_RANK: dict[RideStatus, int] = {
    RideStatus.PENDING: 0,
    RideStatus.ACCEPTED: 1,
    RideStatus.ARRIVING: 2,
    RideStatus.IN_PROGRESS: 3,
    RideStatus.COMPLETED: 4,
    RideStatus.CANCELLED: 4,
}
