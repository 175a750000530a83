"""
Tiered Radius Dispatch
======================

1. **Distance**  -- Haversine from the pickup to every online driver's
   last known position (excluded drivers are dropped first).
2. **Tiers**     -- keep drivers within 5 km; if none, within 15 km; if
   still none, every online driver regardless of distance.
3. **Top-K**     -- sort ascending by distance, return at most 5.

The same ordering drives the pull side: a driver's pending pool is the
list of open rides sorted by distance from the driver.

Complexity
----------
Let D = online drivers with a known position.

* Distance pass: O(D)
* Sort:          O(D log D)

**Note:** nearest-first is the whole matching policy.  There is no
auction, no acceptance-rate weighting and no global optimisation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, TypeVar

from .entities import DriverPosition, Location

T = TypeVar("T")


@dataclass(frozen=True)
class DriverCandidate:
    driver_id: str
    latitude: float
    longitude: float
    distance_km: float


def find_nearby_drivers(
    pickup: Location,
    positions: Iterable[DriverPosition],
    exclude_driver_ids: Optional[Iterable[str]] = None,
    radii_km: Sequence[float] = (5.0, 15.0),
    limit: int = 5,
) -> list[DriverCandidate]:
    """Nearest online drivers for *pickup*, widening the radius as needed."""
    excluded = set(exclude_driver_ids or ())
    candidates = sorted(
        (
            DriverCandidate(
                driver_id=p.driver_id,
                latitude=p.latitude,
                longitude=p.longitude,
                distance_km=round(pickup.distance_km(p.location), 3),
            )
            for p in positions
            if p.driver_id not in excluded
        ),
        key=lambda c: c.distance_km,
    )

    selected: list[DriverCandidate] = []
    for radius in radii_km:
        selected = [c for c in candidates if c.distance_km <= radius]
        if selected:
            break
    if not selected:
        selected = candidates

    return selected[:limit]


def order_by_distance(
    origin: Location,
    items: Iterable[T],
    location_of,
) -> list[tuple[T, float]]:
    """Pair each item with its distance from *origin*, nearest first."""
    ranked = [(item, origin.distance_km(location_of(item))) for item in items]
    ranked.sort(key=lambda pair: pair[1])
    return ranked
