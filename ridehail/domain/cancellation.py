"""
Cancellation Fee Policy
=======================

Stage fees (all in EUR, driver position fixed)
----------------------------------------------
* **pending**      -- 0, no driver committed yet.
* **accepted**     -- travel compensation: ``max(0, 5 - d_pickup) x 1.5``.
* **arriving**     -- travel compensation while the driver is more than
  2 km from pickup; a flat 30 % of the price once within 2 km.
* **in_progress**  -- ``price x max(0.5, covered_share)`` where
  ``covered_share = 1 - remaining_to_dropoff / route_length``, raised to
  what accepted or arriving would charge at the same position.  A short
  ride cancelled right after pickup can therefore cost more than
  ``price x max(0.5, covered_share)``, up to the full price.

A stage never charges less than an earlier stage would for the same
position, and no fee exceeds the ride price.  Results are rounded to cents.

The 5 km baseline is a heuristic for the driver's distance to pickup at
dispatch time, not a measured value.  When the driver's position is
unknown the baseline itself is assumed (travel compensation 0) and no
route is considered covered.

The fee is advisory: it is recorded on the ride and never captured.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .entities import Location, Ride
from .enums import RideStatus

_STAGES = (RideStatus.ACCEPTED, RideStatus.ARRIVING, RideStatus.IN_PROGRESS)


@dataclass(frozen=True)
class CancellationQuote:
    fee: float
    # driver's distance to the target that drove the fee (pickup or dropoff)
    distance_km: float


@dataclass(frozen=True)
class FeePolicy:
    near_pickup_km: float = 2.0
    baseline_km: float = 5.0
    rate_per_km: float = 1.5
    arriving_share: float = 0.3
    in_progress_floor: float = 0.5

    def travel_compensation(self, distance_to_pickup_km: float) -> float:
        return max(0.0, self.baseline_km - distance_to_pickup_km) * self.rate_per_km

    def covered_share(self, remaining_km: float, route_km: float) -> float:
        if route_km <= 0:
            return 0.0
        return min(1.0, max(0.0, 1.0 - remaining_km / route_km))

    def _stage_fee(
        self,
        stage: RideStatus,
        price: float,
        distance_to_pickup_km: float,
        covered: float,
    ) -> float:
        if stage == RideStatus.IN_PROGRESS:
            return price * max(self.in_progress_floor, covered)
        if stage == RideStatus.ARRIVING and distance_to_pickup_km <= self.near_pickup_km:
            return price * self.arriving_share
        return self.travel_compensation(distance_to_pickup_km)

    def calculate(
        self,
        status: RideStatus,
        price: float,
        distance_to_pickup_km: Optional[float] = None,
        remaining_to_dropoff_km: Optional[float] = None,
        route_km: float = 0.0,
    ) -> float:
        if status not in _STAGES or price <= 0:
            return 0.0

        to_pickup = (
            self.baseline_km
            if distance_to_pickup_km is None
            else distance_to_pickup_km
        )
        covered = (
            0.0
            if remaining_to_dropoff_km is None
            else self.covered_share(remaining_to_dropoff_km, route_km)
        )

        fee = 0.0
        for stage in _STAGES[: _STAGES.index(status) + 1]:
            fee = max(fee, self._stage_fee(stage, price, to_pickup, covered))
        return round(min(fee, price), 2)

    def quote(
        self, ride: Ride, driver_location: Optional[Location]
    ) -> CancellationQuote:
        """Fee for cancelling *ride* now, given the driver's last position."""
        if ride.status not in _STAGES:
            return CancellationQuote(fee=0.0, distance_km=0.0)

        to_pickup = remaining = None
        if driver_location is not None:
            to_pickup = driver_location.distance_km(ride.pickup)
            remaining = driver_location.distance_km(ride.dropoff)

        fee = self.calculate(
            ride.status,
            ride.price,
            distance_to_pickup_km=to_pickup,
            remaining_to_dropoff_km=remaining,
            route_km=ride.route_km,
        )
        reference = remaining if ride.status == RideStatus.IN_PROGRESS else to_pickup
        return CancellationQuote(
            fee=fee,
            distance_km=round(reference, 2) if reference is not None else 0.0,
        )
