"""Unit tests for coordinate conversion helpers."""

from __future__ import annotations

import math

import pytest

from geomap.coords import (
    calculate_distance,
    create_normalized_coordinates,
    get_coords,
    map_to_screen_coordinates,
    normalize_latitude,
    normalize_longitude,
    screen_to_map_coordinates,
    to_degrees,
    to_radians,
)
from geomap.zoom import ZOOM_IDENTITY, ZoomTransform


# ===========================================================================
# Normalization
# ===========================================================================

class TestNormalize:
    def test_longitude_wraps_past_antimeridian(self):
        assert normalize_longitude(190) == -170

    def test_longitude_multiple_turns(self):
        assert normalize_longitude(540) == 180

    def test_longitude_negative(self):
        assert normalize_longitude(-190) == 170

    def test_longitude_in_range_unchanged(self):
        assert normalize_longitude(-45.5) == -45.5

    def test_latitude_clamped(self):
        assert normalize_latitude(100) == 90
        assert normalize_latitude(-100) == -90
        assert normalize_latitude(12.5) == 12.5

    def test_normalized_coordinates(self):
        coords = create_normalized_coordinates(370, -95)
        assert coords.lon == 10
        assert coords.lat == -90


# ===========================================================================
# Distance and angles
# ===========================================================================

class TestDistance:
    def test_one_degree_on_equator(self):
        assert calculate_distance((0, 0), (1, 0)) == pytest.approx(111.19, abs=0.1)

    def test_same_point(self):
        assert calculate_distance((12.3, 45.6), (12.3, 45.6)) == 0.0

    def test_pole_to_pole(self):
        assert calculate_distance((0, 90), (0, -90)) == pytest.approx(math.pi * 6371, rel=1e-9)

    def test_radians_degrees(self):
        assert to_radians(180) == pytest.approx(math.pi)
        assert to_degrees(math.pi / 2) == pytest.approx(90)


# ===========================================================================
# Screen <-> map
# ===========================================================================

class TestScreenMap:
    @pytest.mark.parametrize("x,y", [(0, 0), (800, 600), (123.4, 567.8), (400, 300)])
    def test_round_trip_identity(self, x, y):
        coords = screen_to_map_coordinates(x, y, 800, 600, ZOOM_IDENTITY)
        sx, sy = map_to_screen_coordinates(coords, 800, 600, ZOOM_IDENTITY)
        assert sx == pytest.approx(x, abs=1e-6)
        assert sy == pytest.approx(y, abs=1e-6)

    def test_center_is_origin(self):
        coords = screen_to_map_coordinates(400, 300, 800, 600, ZOOM_IDENTITY)
        assert coords.lon == pytest.approx(0)
        assert coords.lat == pytest.approx(0)

    def test_transform_applied(self):
        t = ZoomTransform(k=2, x=-400, y=-300)
        coords = screen_to_map_coordinates(400, 300, 800, 600, t)
        assert coords.lon == pytest.approx(0)
        assert coords.lat == pytest.approx(0)


class TestGetCoords:
    def test_identity_is_viewport_center(self):
        coords = get_coords(800, 600, ZOOM_IDENTITY)
        assert (coords.lon, coords.lat) == (400, 300)

    def test_centered_zoom(self):
        # Zooming 2x about the viewport center keeps the same center point.
        t = ZoomTransform(k=2, x=-400, y=-300)
        coords = get_coords(800, 600, t)
        assert coords.lon == pytest.approx(400)
        assert coords.lat == pytest.approx(300)
