"""Unit tests for the booking price engine."""

from datetime import date

import pytest

from ridehail.domain.enums import PromoType
from ridehail.domain.pricing import (
    DayPromotion,
    FirstRideFree,
    PricingEngine,
    StandardPricing,
)

MONDAY = date(2026, 10, 19)
SUNDAY = date(2026, 10, 18)


class TestPricingStrategies:
    def test_standard_pricing(self):
        quote = StandardPricing().quote(10.0, 30)
        assert quote.price == 18.5  # 3.50 + 10 x 1.50
        assert quote.breakdown.base == 3.5
        assert quote.breakdown.distance == 15.0
        assert quote.source == "local"

    def test_zero_distance_is_base_fare(self):
        assert StandardPricing().quote(0.0, 0).price == 3.5

    def test_negative_distance_is_clamped(self):
        assert StandardPricing().quote(-4.0, 0).price == 3.5

    def test_first_ride_free_below_threshold(self):
        discount = FirstRideFree(eligible=True, max_price=20.0)
        assert discount.applies(18.5, MONDAY)
        assert discount.amount(18.5) == 18.5

    def test_first_ride_free_not_at_threshold(self):
        assert not FirstRideFree(eligible=True, max_price=20.0).applies(20.0, MONDAY)

    def test_first_ride_free_requires_eligibility(self):
        assert not FirstRideFree(eligible=False).applies(5.0, MONDAY)

    def test_day_promotion_on_configured_weekday(self):
        promo = DayPromotion(percent=10, weekdays=[0])
        assert promo.applies(30.0, MONDAY)
        assert not promo.applies(30.0, SUNDAY)
        assert promo.amount(30.0) == 3.0

    def test_day_promotion_disabled_at_zero_percent(self):
        assert not DayPromotion(percent=0).applies(30.0, MONDAY)


class TestPricingEngine:
    def setup_method(self):
        self.engine = PricingEngine(promo_percent=10.0)

    def test_ten_km_first_ride_is_free(self):
        quote = self.engine.local_quote(10.0)
        booking = self.engine.apply_discount(quote.price, True, MONDAY)
        assert booking.price == 18.5  # stored undiscounted
        assert booking.charged == 0.0
        assert booking.first_ride_discount
        assert booking.promo_type == PromoType.FIRST_RIDE

    def test_discounts_are_exclusive(self):
        booking = self.engine.apply_discount(18.5, True, MONDAY)
        # first ride wins; the day promo is not stacked on top
        assert booking.promo_discount == 18.5
        assert booking.promo_type == PromoType.FIRST_RIDE

    def test_day_promo_when_first_ride_used(self):
        booking = self.engine.apply_discount(18.5, False, MONDAY)
        assert booking.promo_type == PromoType.DAY_PROMO
        assert booking.promo_discount == 1.85
        assert booking.charged == 16.65

    def test_expensive_first_ride_falls_through_to_day_promo(self):
        booking = self.engine.apply_discount(40.0, True, MONDAY)
        assert booking.promo_type == PromoType.DAY_PROMO
        assert not booking.first_ride_discount

    def test_no_discount(self):
        booking = PricingEngine().apply_discount(18.5, False, MONDAY)
        assert booking.promo_type is None
        assert booking.promo_discount == 0.0
        assert booking.charged == 18.5

    @pytest.mark.parametrize("distance", [0.0, 0.3, 2.5, 10.0, 250.0])
    def test_fallback_price_finite_and_non_negative(self, distance):
        price = self.engine.local_quote(distance).price
        assert price >= 0
        assert price == round(price, 2)
