"""
FastAPI application factory.

* Registers routes for rides, drivers, dispatch, pricing, chat, geocoding,
  admin and the live ride stream.
* Starts / stops the change-feed listener and the pending-ride expiry
  worker via lifespan events.
* Maps domain exceptions to HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridehail.api.middleware import limiter
from ridehail.api.routes import admin, dispatch, drivers, geocode, messages, realtime, rides
from ridehail.config import settings
from ridehail.domain.exceptions import (
    DriverNotAvailableError,
    InvalidStateTransition,
    NotAuthorizedError,
    RideNotAvailableError,
    RideNotFoundError,
    RideValidationError,
)
from ridehail.infrastructure.redis_client import get_change_feed
from ridehail.logging_setup import configure_logging
from ridehail.workers import expiry as _expiry

ERROR_STATUS: dict[type[Exception], int] = {
    RideNotFoundError: 404,
    RideNotAvailableError: 409,
    InvalidStateTransition: 409,
    DriverNotAvailableError: 409,
    RideValidationError: 422,
    NotAuthorizedError: 403,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the change feed and expiry worker on startup; stop on shutdown."""
    feed = await get_change_feed()
    await feed.start()
    await _expiry.start_expiry_loop()
    yield
    await _expiry.stop_expiry_loop()
    await feed.stop()


async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(type(exc), 400),
        content={"detail": str(exc)},
    )


def create_app() -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Ride-Hailing Core API",
        description=(
            "Ride lifecycle, driver dispatch and cancellation fees.  "
            "Rides are claimed atomically by exactly one driver and every "
            "change is streamed to the parties in real time."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    for exc_class in ERROR_STATUS:
        app.add_exception_handler(exc_class, domain_error_handler)

    # Routers
    for module in (rides, messages, drivers, dispatch, geocode, admin):
        app.include_router(module.router, prefix="/api/v1")
    app.include_router(realtime.router)

    return app
