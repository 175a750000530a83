"""Unit tests for distance helpers and tiered-radius dispatch."""

import pytest

from ridehail.domain.distance import estimate_eta_minutes, haversine_km, haversine_m
from ridehail.domain.entities import DriverPosition, Location
from ridehail.domain.matching import find_nearby_drivers, order_by_distance

from tests.conftest import PICKUP, north_of


def _at(driver_id: str, km_north: float) -> DriverPosition:
    loc = north_of(PICKUP, km_north)
    return DriverPosition(driver_id=driver_id, latitude=loc.latitude, longitude=loc.longitude)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(52.52, 13.405, 52.52, 13.405) == 0.0

    def test_known_distance(self):
        # Brandenburger Tor -> Alexanderplatz, roughly 2.5 km
        d = haversine_km(52.5163, 13.3777, 52.5219, 13.4132)
        assert 2.0 < d < 3.0

    def test_symmetric(self):
        d1 = haversine_km(52.0, 13.0, 53.0, 14.0)
        d2 = haversine_km(53.0, 14.0, 52.0, 13.0)
        assert abs(d1 - d2) < 1e-6

    def test_metres(self):
        assert haversine_m(52.0, 13.0, 53.0, 14.0) == pytest.approx(
            haversine_km(52.0, 13.0, 53.0, 14.0) * 1000
        )


class TestEta:
    def test_three_minutes_per_km(self):
        assert estimate_eta_minutes(4.0) == 12

    def test_never_below_one_minute(self):
        assert estimate_eta_minutes(0.0) == 1
        assert estimate_eta_minutes(0.1) == 1


class TestFindNearbyDrivers:
    def test_inner_radius_preferred(self):
        positions = [_at("far", 10.0), _at("near", 1.0), _at("mid", 4.0)]
        result = find_nearby_drivers(PICKUP, positions)
        assert [c.driver_id for c in result] == ["near", "mid"]

    def test_widens_to_outer_radius(self):
        positions = [_at("a", 12.0), _at("b", 8.0), _at("c", 40.0)]
        result = find_nearby_drivers(PICKUP, positions)
        assert [c.driver_id for c in result] == ["b", "a"]

    def test_falls_back_to_everyone(self):
        positions = [_at("a", 60.0), _at("b", 30.0)]
        result = find_nearby_drivers(PICKUP, positions)
        assert [c.driver_id for c in result] == ["b", "a"]

    def test_at_most_five_sorted(self):
        positions = [_at(f"d{i}", 0.5 * i) for i in range(8, 0, -1)]
        result = find_nearby_drivers(PICKUP, positions)
        assert len(result) == 5
        distances = [c.distance_km for c in result]
        assert distances == sorted(distances)

    def test_excluded_drivers_dropped_before_tiering(self):
        # excluding the only inner driver pushes the search outward
        positions = [_at("near", 1.0), _at("outer", 9.0)]
        result = find_nearby_drivers(PICKUP, positions, exclude_driver_ids=["near"])
        assert [c.driver_id for c in result] == ["outer"]

    def test_no_drivers(self):
        assert find_nearby_drivers(PICKUP, []) == []


class TestOrderByDistance:
    def test_nearest_first(self):
        places = {"x": north_of(PICKUP, 3.0), "y": north_of(PICKUP, 1.0)}
        ranked = order_by_distance(PICKUP, ["x", "y"], places.__getitem__)
        assert [item for item, _ in ranked] == ["y", "x"]
        assert ranked[0][1] == pytest.approx(1.0, abs=1e-6)

    def test_location_distance(self):
        assert PICKUP.distance_km(Location(PICKUP.latitude, PICKUP.longitude)) == 0.0
