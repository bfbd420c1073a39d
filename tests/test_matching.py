"""Unit tests for distance math, H3 binning and nearby-driver ranking."""

from datetime import datetime, timezone

import h3
import pytest

from src.domain.distance import eta_minutes, haversine_miles, validate_coordinates
from src.domain.entities import Location
from src.domain.exceptions import InvalidCoordinates, ValidationError
from src.domain.matching import (
    DriverPosition,
    cell_prefix,
    driver_h3_cell,
    rank_drivers,
    search_cells,
    search_disk_radius,
)
from src.domain.enums import BackgroundCheckStatus, DriverApprovalStatus
from src.infrastructure.models import DriverProfileModel
from src.services.matching import DriverMatcher
from tests.conftest import PICKUP, add_driver

MILES_PER_DEGREE_LAT = 69.09


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_miles(37.7749, -122.4194, 37.7749, -122.4194) == 0.0

    def test_known_distance(self):
        # San Francisco -> Los Angeles ~347 mi
        d = haversine_miles(37.7749, -122.4194, 34.0522, -118.2437)
        assert 340 < d < 355

    def test_symmetric(self):
        d1 = haversine_miles(37.0, -122.0, 38.0, -121.0)
        d2 = haversine_miles(38.0, -121.0, 37.0, -122.0)
        assert abs(d1 - d2) < 1e-9

    def test_eta_at_city_speed(self):
        assert eta_minutes(15.0, 30.0) == 30.0

    def test_eta_at_bike_speed(self):
        assert eta_minutes(1.0, 15.0) == 4.0


class TestCoordinateValidation:
    @pytest.mark.parametrize(
        "lat,lng",
        [(90.01, 0.0), (-90.01, 0.0), (0.0, 180.01), (0.0, -180.01), (float("nan"), 0.0)],
    )
    def test_out_of_range_rejected(self, lat, lng):
        with pytest.raises(InvalidCoordinates):
            validate_coordinates(lat, lng)

    def test_bounds_are_inclusive(self):
        validate_coordinates(90.0, 180.0)
        validate_coordinates(-90.0, -180.0)


class TestH3Cell:
    def test_returns_valid_cell(self):
        cell = driver_h3_cell(37.7749, -122.4194)
        assert h3.is_valid_cell(cell)
        assert h3.get_resolution(cell) == 5

    def test_nearby_points_same_cell(self):
        """Two points ~15 m apart share a resolution-5 cell."""
        assert driver_h3_cell(37.7749, -122.4194) == driver_h3_cell(37.7750, -122.4195)

    def test_distant_points_different_cell(self):
        assert driver_h3_cell(37.7749, -122.4194) != driver_h3_cell(40.7128, -74.0060)

    @pytest.mark.parametrize("resolution", [5, 7, 9])
    def test_prefix_identifies_resolution(self, resolution):
        cell = driver_h3_cell(37.7749, -122.4194, resolution)
        assert cell.startswith(cell_prefix(resolution))
        assert not cell.startswith(cell_prefix(resolution + 1))


class TestSearchCells:
    def test_disk_contains_pickup_cell(self):
        cells = search_cells(PICKUP, 10.0)
        assert driver_h3_cell(PICKUP.latitude, PICKUP.longitude) in cells

    @pytest.mark.parametrize("bearing", ["north", "south", "east", "west"])
    def test_disk_covers_drivers_at_the_edge_of_range(self, bearing):
        dlat = 9.9 / MILES_PER_DEGREE_LAT
        dlng = dlat / 0.79  # cos(37.77 deg)
        lat, lng = {
            "north": (PICKUP.latitude + dlat, PICKUP.longitude),
            "south": (PICKUP.latitude - dlat, PICKUP.longitude),
            "east": (PICKUP.latitude, PICKUP.longitude + dlng),
            "west": (PICKUP.latitude, PICKUP.longitude - dlng),
        }[bearing]
        assert haversine_miles(PICKUP.latitude, PICKUP.longitude, lat, lng) <= 10.0
        assert driver_h3_cell(lat, lng) in search_cells(PICKUP, 10.0)

    def test_larger_radius_needs_larger_disk(self):
        assert search_disk_radius(50.0) > search_disk_radius(5.0)

    def test_oversized_disk_skips_prefilter(self):
        assert search_cells(PICKUP, 5000.0, max_cells=1000) is None


def _position(driver_id, lat, lng, rating=5.0):
    return DriverPosition(
        driver_id=driver_id,
        latitude=lat,
        longitude=lng,
        rating=rating,
        last_seen=datetime.now(timezone.utc),
    )


class TestRankDrivers:
    def test_nearest_first(self):
        drivers = [
            _position("far", 37.7849, -122.4094),
            _position("near", 37.7793, -122.4193),
        ]
        ranked = rank_drivers(PICKUP, drivers, 10.0)
        assert [c.driver_id for c in ranked] == ["near", "far"]

    def test_excludes_out_of_range(self):
        drivers = [
            _position("near", 37.7793, -122.4193),
            _position("oakland", 37.8044, -122.2712),
        ]
        ranked = rank_drivers(PICKUP, drivers, 5.0)
        assert [c.driver_id for c in ranked] == ["near"]

    def test_ties_broken_by_driver_id(self):
        drivers = [
            _position("b", 37.7793, -122.4193),
            _position("a", 37.7793, -122.4193),
        ]
        assert [c.driver_id for c in rank_drivers(PICKUP, drivers, 1.0)] == ["a", "b"]

    def test_eta_uses_approach_speed(self):
        ranked = rank_drivers(PICKUP, [_position("d", 37.7849, -122.4094)], 10.0)
        candidate = ranked[0]
        assert candidate.distance_mi == 0.88
        assert candidate.eta_min == 3.5  # 0.88 mi at 15 mph

    def test_empty_input(self):
        assert rank_drivers(PICKUP, [], 10.0) == []


class TestDriverMatcher:
    @pytest.mark.asyncio
    async def test_only_eligible_drivers_in_range(self, db_session, test_settings):
        near = await add_driver(db_session, 37.7793, -122.4193, name="Near")
        farther = await add_driver(db_session, 37.7849, -122.4094, name="Farther")
        await add_driver(db_session, 37.7750, -122.4180, online=False)
        await add_driver(
            db_session, 37.7750, -122.4180, status=DriverApprovalStatus.PENDING
        )
        await add_driver(
            db_session, 37.7750, -122.4180, check=BackgroundCheckStatus.PENDING
        )
        await add_driver(db_session, None, None, name="No GPS")
        await add_driver(db_session, 37.3382, -121.8863, name="San Jose")
        await db_session.commit()

        found = await DriverMatcher(db_session, test_settings).nearby(PICKUP, 10.0)

        assert [c.driver_id for c in found] == [near, farther]
        assert found[0].driver_name == "Near"
        assert found[0].distance_mi < found[1].distance_mi

    @pytest.mark.asyncio
    async def test_default_radius_from_settings(self, db_session, test_settings):
        oakland = await add_driver(db_session, 37.8044, -122.2712)
        await db_session.commit()

        found = await DriverMatcher(db_session, test_settings).nearby(PICKUP)

        assert [c.driver_id for c in found] == [oakland]

    @pytest.mark.asyncio
    async def test_non_positive_radius_rejected(self, db_session, test_settings):
        with pytest.raises(ValidationError):
            await DriverMatcher(db_session, test_settings).nearby(PICKUP, 0)

    @pytest.mark.asyncio
    async def test_invalid_pickup_rejected(self, db_session, test_settings):
        with pytest.raises(InvalidCoordinates):
            await DriverMatcher(db_session, test_settings).nearby(Location(95.0, 0.0))

    @pytest.mark.asyncio
    async def test_drivers_indexed_at_old_resolution_still_found(
        self, db_session, test_settings
    ):
        near = await add_driver(db_session, 37.7793, -122.4193, name="Old index")
        far = await add_driver(db_session, 37.3382, -121.8863, name="Old index, far")
        for driver_id, lat, lng in ((near, 37.7793, -122.4193), (far, 37.3382, -121.8863)):
            profile = await db_session.get(DriverProfileModel, driver_id)
            profile.h3_cell = driver_h3_cell(lat, lng, resolution=8)
        unindexed = await add_driver(db_session, 37.7800, -122.4200, name="No cell")
        (await db_session.get(DriverProfileModel, unindexed)).h3_cell = None
        await db_session.commit()

        found = await DriverMatcher(db_session, test_settings).nearby(PICKUP, 10.0)

        assert {c.driver_id for c in found} == {near, unindexed}
