"""Domain exceptions for ride management."""


class RideNotFoundError(Exception):
    """Raised when a ride cannot be found (or is not visible to the actor)."""


class RideNotAvailableError(Exception):
    """Raised when a conditional write affected no row: claim lost or stale state."""

    def __init__(self, message: str = "Ride no longer available"):
        super().__init__(message)


class InvalidStateTransition(Exception):
    """Raised when a ride status change violates the state machine."""


class NotAuthorizedError(Exception):
    """Raised when the actor is neither the ride's customer nor its driver."""


class RideValidationError(Exception):
    """Raised when a request is rejected before any write."""


class DriverNotAvailableError(Exception):
    """Raised when a driver is offline or already bound to an active ride."""
