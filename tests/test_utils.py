"""
Unit tests for geographic utilities.
"""

import random

import pytest

from fieldroute import config, utils
from fieldroute.models import Coordinate


class TestDistanceMiles:
    """Test cases for haversine distance."""

    def test_same_point_is_zero(self):
        point = Coordinate(40.7128, -74.0060)
        assert utils.distance_miles(point, point) == 0.0

    def test_symmetric(self):
        a = Coordinate(40.7128, -74.0060)
        b = Coordinate(40.7831, -73.9712)
        assert utils.distance_miles(a, b) == utils.distance_miles(b, a)

    def test_lower_manhattan_to_midtown(self):
        """Test a known city distance."""
        d = utils.distance_miles(Coordinate(40.7128, -74.0060), Coordinate(40.7484, -73.9857))
        assert d == pytest.approx(2.68, abs=0.02)

    def test_one_degree_of_latitude(self):
        d = utils.distance_miles(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))
        assert d == pytest.approx(69.09, abs=0.05)


class TestStepToward:
    """Test cases for coordinate-space movement."""

    def test_snaps_to_target_inside_threshold(self):
        """Test that a short remaining hop lands exactly on the target."""
        target = Coordinate(40.0, -73.9995)
        result = utils.step_toward(Coordinate(40.0, -74.0), target)
        assert result == target

    def test_moves_fixed_step_along_line(self):
        result = utils.step_toward(Coordinate(40.0, -74.0), Coordinate(40.0, -73.99))
        assert result.lat == pytest.approx(40.0)
        assert result.lng == pytest.approx(-74.0 + config.SPEED_STEP_DEGREES)

    def test_step_length_is_constant_on_diagonal(self):
        start = Coordinate(40.0, -74.0)
        result = utils.step_toward(start, Coordinate(40.1, -73.9))
        assert utils.euclidean_degrees(start, result) == pytest.approx(config.SPEED_STEP_DEGREES)

    def test_repeated_steps_arrive(self):
        position = Coordinate(40.70, -74.00)
        target = Coordinate(40.72, -73.99)
        for _ in range(100):
            position = utils.step_toward(position, target)
            if position == target:
                break
        assert position == target

    def test_custom_step_and_threshold(self):
        result = utils.step_toward(
            Coordinate(0.0, 0.0), Coordinate(0.0, 1.0), step_size=0.5, snap_threshold=0.1
        )
        assert result == Coordinate(0.0, 0.5)


class TestJitter:
    """Test cases for idle GPS noise."""

    def test_stays_within_bound(self):
        rng = random.Random(7)
        origin = Coordinate(40.75, -73.99)
        for _ in range(500):
            moved = utils.jitter(origin, rng=rng)
            assert abs(moved.lat - origin.lat) <= config.IDLE_JITTER_DEGREES
            assert abs(moved.lng - origin.lng) <= config.IDLE_JITTER_DEGREES

    def test_seeded_rng_is_reproducible(self):
        origin = Coordinate(40.75, -73.99)
        a = utils.jitter(origin, rng=random.Random(3))
        b = utils.jitter(origin, rng=random.Random(3))
        assert a == b


class TestTravelTime:
    def test_fifteen_mph(self):
        assert utils.travel_time_hours(7.5) == pytest.approx(0.5)

    def test_non_positive_speed_is_infinite(self, monkeypatch):
        monkeypatch.setattr(config, "AVG_SPEED_MPH", 0.0)
        assert utils.travel_time_hours(1.0) == float('inf')


class TestMapHelpers:
    """Test cases for board display helpers."""

    def test_project_center(self):
        bounds = config.MAP_BOUNDS
        center = Coordinate(
            (bounds["min_lat"] + bounds["max_lat"]) / 2,
            (bounds["min_lng"] + bounds["max_lng"]) / 2,
        )
        top, left = utils.project_to_map(center)
        assert top == pytest.approx(50.0)
        assert left == pytest.approx(50.0)

    def test_project_north_west_corner_is_top_left(self):
        bounds = config.MAP_BOUNDS
        top, left = utils.project_to_map(Coordinate(bounds["max_lat"], bounds["min_lng"]))
        assert top == pytest.approx(0.0)
        assert left == pytest.approx(0.0)

    def test_random_point_inside_bounds(self):
        rng = random.Random(11)
        bounds = config.MAP_BOUNDS
        for _ in range(100):
            point = utils.random_point_in_bounds(rng)
            assert bounds["min_lat"] <= point.lat <= bounds["max_lat"]
            assert bounds["min_lng"] <= point.lng <= bounds["max_lng"]

    @pytest.mark.parametrize(
        "hours,expected",
        [(0.0, "0m"), (0.75, "45m"), (1.0, "1h 00m"), (2 + 5 / 60, "2h 05m")],
    )
    def test_format_hours(self, hours, expected):
        assert utils.format_hours(hours) == expected
