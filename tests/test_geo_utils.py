"""Unit tests for per-feature geographic helpers."""

from __future__ import annotations

import pytest

from geomap.geo_utils import (
    geography_event_data,
    get_best_geography_coordinates,
    get_geography_bounds,
    get_geography_centroid,
    get_geography_coordinates,
    is_valid_coordinates,
)

SQUARE = {
    "type": "Feature",
    "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]]},
}


class TestCentroidAndBounds:
    def test_polygon_centroid(self):
        centroid = get_geography_centroid(SQUARE)
        assert centroid.lon == pytest.approx(5)
        assert centroid.lat == pytest.approx(5)

    def test_bounds(self):
        (west, south), (east, north) = get_geography_bounds(SQUARE)
        assert (west, south, east, north) == (0, 0, 10, 10)

    @pytest.mark.parametrize(
        "geography",
        [
            None,
            {},
            {"type": "Feature", "geometry": None},
            {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": []}},
        ],
    )
    def test_missing_geometry(self, geography):
        assert get_geography_centroid(geography) is None
        assert get_geography_bounds(geography) is None

    def test_out_of_range_values_rejected(self):
        projected = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [500, 20]}}
        assert get_geography_centroid(projected) is None
        assert get_geography_bounds(projected) is None


class TestCoordinates:
    @pytest.mark.parametrize(
        "geometry,expected",
        [
            ({"type": "Point", "coordinates": [1, 2]}, (1, 2)),
            ({"type": "MultiPoint", "coordinates": [[3, 4], [5, 6]]}, (3, 4)),
            ({"type": "LineString", "coordinates": [(7, 8), (9, 10)]}, (7, 8)),
            ({"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]}, (0, 0)),
            ({"type": "MultiPolygon", "coordinates": [[[[2, 2], [3, 2], [3, 3], [2, 2]]]]}, (2, 2)),
            (
                {"type": "GeometryCollection", "geometries": [{"type": "Point", "coordinates": [4, 4]}]},
                (4, 4),
            ),
        ],
    )
    def test_first_position(self, geometry, expected):
        assert get_geography_coordinates({"type": "Feature", "geometry": geometry}) == expected

    @pytest.mark.parametrize(
        "geometry",
        [
            {"type": "Point", "coordinates": []},
            {"type": "Point", "coordinates": ["a", "b"]},
            {"type": "Polygon", "coordinates": [[]]},
            {"type": "Unknown", "coordinates": [1, 2]},
        ],
    )
    def test_unusable_positions(self, geometry):
        assert get_geography_coordinates({"type": "Feature", "geometry": geometry}) is None

    def test_best_prefers_centroid(self):
        assert get_best_geography_coordinates(SQUARE) == pytest.approx((5, 5))

    def test_best_falls_back_to_first_vertex(self):
        far = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [500, 20]}}
        assert get_best_geography_coordinates(far) == (500, 20)

    @pytest.mark.parametrize(
        "value,expected",
        [
            ([10, 20], True),
            ((-180, 90), True),
            ([181, 0], False),
            ([0, float("nan")], False),
            ([True, 0], False),
            ([1, 2, 3], False),
            ("1,2", False),
        ],
    )
    def test_is_valid_coordinates(self, value, expected):
        assert is_valid_coordinates(value) is expected

    def test_event_data(self):
        data = geography_event_data(SQUARE)
        assert data.geography is SQUARE
        assert data.centroid == pytest.approx((5, 5))
        assert data.coordinates == (0, 0)
        assert data.bounds[1] == (10, 10)
