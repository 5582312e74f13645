"""Tests for great-circle distance and radius filtering."""

import math
import random

import pytest

from conftest import MADRID, offset
from placelens.geo import EARTH_RADIUS_M, bbox, distance_m, haversine_m, within_radius
from placelens.models import Coordinate


def _vincenty_sphere(lat1, lon1, lat2, lon2):
    """Reference great-circle distance (Vincenty special case for a sphere)."""
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dl = math.radians(lon2 - lon1)
    num = math.hypot(
        math.cos(p2) * math.sin(dl),
        math.cos(p1) * math.sin(p2) - math.sin(p1) * math.cos(p2) * math.cos(dl),
    )
    den = math.sin(p1) * math.sin(p2) + math.cos(p1) * math.cos(p2) * math.cos(dl)
    return EARTH_RADIUS_M * math.atan2(num, den)


class TestHaversine:
    def test_one_degree_of_latitude(self):
        assert round(haversine_m(0, 0, 1, 0)) == 111195

    def test_zero_distance(self):
        assert haversine_m(40.4168, -3.7038, 40.4168, -3.7038) == 0

    def test_symmetric_and_matches_reference(self):
        rng = random.Random(7)
        for _ in range(500):
            lat1 = rng.uniform(-80, 80)
            lon1 = rng.uniform(-179, 179)
            lat2 = lat1 + rng.uniform(-0.3, 0.3)
            lon2 = lon1 + rng.uniform(-0.3, 0.3)
            forward = haversine_m(lat1, lon1, lat2, lon2)
            assert forward == pytest.approx(haversine_m(lat2, lon2, lat1, lon1), abs=1e-6)
            if forward < 50_000:
                assert abs(forward - _vincenty_sphere(lat1, lon1, lat2, lon2)) < 1.0

    def test_distance_m_rounds_to_metres(self):
        assert distance_m(MADRID, offset(MADRID, north_m=150.4)) == 150
        assert distance_m(MADRID, offset(MADRID, east_m=200)) == 200


class TestWithinRadius:
    def test_keeps_points_inside_circle_only(self):
        points = [offset(MADRID, north_m=d) for d in (0, 500, 1199, 1200, 1201, 5000)]
        kept = within_radius(points, MADRID, 1200)
        assert [d for _, d in kept] == [0, 500, 1199, 1200]

    def test_skips_items_without_point(self):
        items = [("a", offset(MADRID, north_m=10)), ("b", None)]
        kept = within_radius(items, MADRID, 100, key=lambda item: item[1])
        assert [item[0] for item, _ in kept] == ["a"]


def test_bbox_is_square_around_point():
    assert bbox(40.0, -3.0, 0.5) == (39.5, -3.5, 40.5, -2.5)


def test_coordinate_bounds_enforced():
    with pytest.raises(ValueError):
        Coordinate(lat=91, lon=0)
    with pytest.raises(ValueError):
        Coordinate(lat=0, lon=-181)
