"""
Booking Price Engine  (Strategy Pattern)
========================================

Base price
----------
Comes from the remote pricing service when it answers; otherwise the
deterministic local formula is used so booking is never blocked:

    Price = Base_Fare + Distance x Rate_Per_KM       (3.50 + d x 1.50 EUR)

Discounts
---------
Exactly one discount applies, chosen by priority:

1. **First ride free** -- the customer has not used it yet and the
   undiscounted price is below 20 EUR: charged price becomes 0.
2. **Day promotion**   -- a flat percentage off while active.

The stored ``price`` is always the undiscounted one; the discount amount
and type are stored next to it.

Complexity: O(1) per price calculation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from .enums import PromoType


# ── Value objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class PriceBreakdown:
    base: float = 0.0
    distance: float = 0.0
    time: float = 0.0
    fuel_surcharge: float = 0.0


@dataclass(frozen=True)
class PriceQuote:
    price: float
    breakdown: PriceBreakdown = field(default_factory=PriceBreakdown)
    source: str = "local"


@dataclass(frozen=True)
class BookingPrice:
    price: float  # undiscounted, authoritative for billing
    promo_discount: float = 0.0
    promo_type: Optional[PromoType] = None

    @property
    def first_ride_discount(self) -> bool:
        return self.promo_type == PromoType.FIRST_RIDE

    @property
    def charged(self) -> float:
        return round(max(0.0, self.price - self.promo_discount), 2)


# ── Base price strategies ─────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def quote(self, distance_km: float, duration_minutes: int) -> PriceQuote: ...


class StandardPricing(PricingStrategy):
    """The local fallback: base fare plus a per-km rate, no time or fuel."""

    def __init__(self, base_fare: float = 3.5, rate_per_km: float = 1.5):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km

    def quote(self, distance_km: float, duration_minutes: int) -> PriceQuote:
        distance_km = max(0.0, distance_km)
        distance_part = round(distance_km * self.rate_per_km, 2)
        return PriceQuote(
            price=round(self.base_fare + distance_km * self.rate_per_km, 2),
            breakdown=PriceBreakdown(base=self.base_fare, distance=distance_part),
        )


# ── Discount strategies ───────────────────────────────────────────────


class Discount(ABC):
    promo_type: PromoType

    @abstractmethod
    def applies(self, price: float, today: date) -> bool: ...

    @abstractmethod
    def amount(self, price: float) -> float: ...


class FirstRideFree(Discount):
    promo_type = PromoType.FIRST_RIDE

    def __init__(self, eligible: bool, max_price: float = 20.0):
        self.eligible = eligible
        self.max_price = max_price

    def applies(self, price: float, today: date) -> bool:
        return self.eligible and price < self.max_price

    def amount(self, price: float) -> float:
        return price


class DayPromotion(Discount):
    """Percentage off on configured weekdays (every day when none given)."""

    promo_type = PromoType.DAY_PROMO

    def __init__(self, percent: float, weekdays: Optional[list[int]] = None):
        self.percent = percent
        self.weekdays = set(weekdays or [])

    def applies(self, price: float, today: date) -> bool:
        if self.percent <= 0 or price <= 0:
            return False
        return not self.weekdays or today.weekday() in self.weekdays

    def amount(self, price: float) -> float:
        return round(price * min(self.percent, 100.0) / 100.0, 2)


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the booking service and the API layer."""

    def __init__(
        self,
        base_fare: float = 3.5,
        rate_per_km: float = 1.5,
        first_ride_max_price: float = 20.0,
        promo_percent: float = 0.0,
        promo_weekdays: Optional[list[int]] = None,
    ):
        self.fallback = StandardPricing(base_fare, rate_per_km)
        self.first_ride_max_price = first_ride_max_price
        self.promo_percent = promo_percent
        self.promo_weekdays = promo_weekdays or []

    def local_quote(self, distance_km: float, duration_minutes: int = 0) -> PriceQuote:
        return self.fallback.quote(distance_km, duration_minutes)

    def apply_discount(
        self, price: float, first_ride_eligible: bool, today: date
    ) -> BookingPrice:
        """Pick the single highest-priority discount for *price*."""
        price = round(price, 2)
        discounts: list[Discount] = [
            FirstRideFree(first_ride_eligible, self.first_ride_max_price),
            DayPromotion(self.promo_percent, self.promo_weekdays),
        ]
        for discount in discounts:
            if discount.applies(price, today):
                return BookingPrice(
                    price=price,
                    promo_discount=discount.amount(price),
                    promo_type=discount.promo_type,
                )
        return BookingPrice(price=price)
