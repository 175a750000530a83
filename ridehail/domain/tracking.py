"""
Location Tracker
================

Turns a stream of raw driver samples into ``(speed, eta)``.

* **Speed**  -- metres between the previous and current sample divided by
  the elapsed seconds, x 3.6 for km/h.  A sample whose timestamp is not
  strictly after the previous one is skipped outright.
* **ETA**    -- distance to the ride's current target (pickup while the
  driver approaches, dropoff while underway) at a fixed minutes-per-km
  rate, minimum one minute.

Only the latest accepted sample per driver is kept; there is no trajectory.
``measure`` has no side effects; the caller ``remember``s a sample once it
has been stored, so a failed write never moves the tracker ahead.
Irregular or missing samples are fine: a gap only means the last speed and
ETA stay in place until the next sample.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .distance import estimate_eta_minutes, haversine_m
from .entities import Location


@dataclass(frozen=True)
class LocationSample:
    driver_id: str
    latitude: float
    longitude: float
    recorded_at: datetime
    heading: float = 0.0

    @property
    def location(self) -> Location:
        return Location(self.latitude, self.longitude)


@dataclass(frozen=True)
class TrackingUpdate:
    sample: LocationSample
    speed_kmh: Optional[float]  # None until two samples are known
    eta_minutes: Optional[int]  # None when the ride has no target
    distance_to_target_km: Optional[float] = None


def speed_kmh(previous: LocationSample, current: LocationSample) -> Optional[float]:
    """Average speed between two samples; None if time did not advance."""
    elapsed = (current.recorded_at - previous.recorded_at).total_seconds()
    if elapsed <= 0:
        return None
    metres = haversine_m(
        previous.latitude, previous.longitude, current.latitude, current.longitude
    )
    return metres / elapsed * 3.6


class LocationTracker:
    def __init__(self, minutes_per_km: float = 3.0):
        self.minutes_per_km = minutes_per_km
        self._latest: dict[str, LocationSample] = {}

    def latest(self, driver_id: str) -> Optional[LocationSample]:
        return self._latest.get(driver_id)

    def prime(self, sample: LocationSample) -> None:
        """Seed the previous sample from storage unless a newer one is cached."""
        cached = self._latest.get(sample.driver_id)
        if cached is None or sample.recorded_at > cached.recorded_at:
            self._latest[sample.driver_id] = sample

    def forget(self, driver_id: str) -> None:
        """Drop the driver's history (driver went offline)."""
        self._latest.pop(driver_id, None)

    def measure(
        self, sample: LocationSample, target: Optional[Location] = None
    ) -> Optional[TrackingUpdate]:
        """Speed and ETA for *sample* without recording it; None means skip."""
        previous = self._latest.get(sample.driver_id)
        speed = None
        if previous is not None:
            speed = speed_kmh(previous, sample)
            if speed is None:
                return None

        eta = distance = None
        if target is not None:
            distance = sample.location.distance_km(target)
            eta = estimate_eta_minutes(distance, self.minutes_per_km)

        return TrackingUpdate(
            sample=sample,
            speed_kmh=round(speed, 1) if speed is not None else None,
            eta_minutes=eta,
            distance_to_target_km=round(distance, 3) if distance is not None else None,
        )

    def remember(self, update: TrackingUpdate) -> None:
        """Make *update* the driver's latest sample."""
        self._latest[update.sample.driver_id] = update.sample
