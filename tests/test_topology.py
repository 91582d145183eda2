"""Unit tests for TopoJSON decoding and meshes."""

from __future__ import annotations

import pytest

from geomap.errors import GeographyParseError
from geomap.topology import feature, mesh


# ===========================================================================
# feature()
# ===========================================================================


class TestFeature:
    def test_geometry_collection_becomes_feature_collection(self, two_squares_topology):
        collection = feature(two_squares_topology, "countries")
        assert collection["type"] == "FeatureCollection"
        assert [f["id"] for f in collection["features"]] == ["A", "B"]
        assert collection["features"][0]["properties"] == {"name": "Alpha"}

    def test_rings_are_stitched_from_arcs(self, two_squares_topology):
        a, b = feature(two_squares_topology, "countries")["features"]
        assert a["geometry"]["type"] == "Polygon"
        assert a["geometry"]["coordinates"] == [[[1, 0], [1, 1], [0, 1], [0, 0], [1, 0]]]
        # arc -1 is arc 0 reversed
        assert b["geometry"]["coordinates"] == [[[1, 0], [2, 0], [2, 1], [1, 1], [1, 0]]]

    def test_single_geometry_object(self, two_squares_topology):
        obj = two_squares_topology["objects"]["countries"]["geometries"][0]
        out = feature(two_squares_topology, obj)
        assert out["type"] == "Feature"
        assert out["id"] == "A"

    def test_quantized_arcs_and_points(self):
        topology = {
            "type": "Topology",
            "transform": {"scale": [0.5, 0.5], "translate": [10, 20]},
            "arcs": [[[0, 0], [2, 0], [0, 2]]],
            "objects": {
                "things": {
                    "type": "GeometryCollection",
                    "geometries": [
                        {"type": "LineString", "arcs": [0]},
                        {"type": "Point", "coordinates": [2, 4]},
                    ],
                }
            },
        }
        line, point = feature(topology, "things")["features"]
        assert line["geometry"]["coordinates"] == [[10, 20], [11, 20], [11, 21]]
        assert point["geometry"]["coordinates"] == [11, 22]

    def test_reversed_quantized_arc(self):
        topology = {
            "type": "Topology",
            "transform": {"scale": [1, 1], "translate": [0, 0]},
            "arcs": [[[0, 0], [1, 0], [0, 1]]],
            "objects": {"line": {"type": "LineString", "arcs": [-1]}},
        }
        assert feature(topology, "line")["geometry"]["coordinates"] == [[1, 1], [1, 0], [0, 0]]

    def test_null_geometry(self):
        topology = {"type": "Topology", "arcs": [], "objects": {"x": {"type": None, "id": 7}}}
        out = feature(topology, "x")
        assert out["id"] == 7
        assert out["geometry"] is None

    def test_unknown_object_name(self, two_squares_topology):
        with pytest.raises(GeographyParseError):
            feature(two_squares_topology, "rivers")

    def test_missing_arc(self):
        topology = {"type": "Topology", "arcs": [], "objects": {"x": {"type": "LineString", "arcs": [3]}}}
        with pytest.raises(GeographyParseError):
            feature(topology, "x")


# ===========================================================================
# mesh()
# ===========================================================================


class TestMesh:
    def test_outline_merges_exterior_arcs(self, two_squares_topology):
        outline = mesh(two_squares_topology, "countries", lambda a, b: a is b)
        assert outline["type"] == "MultiLineString"
        assert len(outline["coordinates"]) == 1
        points = {tuple(p) for p in outline["coordinates"][0]}
        assert points == {(0, 0), (1, 0), (2, 0), (2, 1), (1, 1), (0, 1)}

    def test_borders_are_shared_arcs(self, two_squares_topology):
        borders = mesh(two_squares_topology, "countries", lambda a, b: a is not b)
        assert len(borders["coordinates"]) == 1
        assert {tuple(p) for p in borders["coordinates"][0]} == {(1, 0), (1, 1)}

    def test_no_predicate_takes_every_arc(self, two_squares_topology):
        out = mesh(two_squares_topology, "countries")
        points = {tuple(p) for line in out["coordinates"] for p in line}
        assert (1, 0) in points and (2, 1) in points

    def test_whole_topology(self, two_squares_topology):
        out = mesh(two_squares_topology)
        assert out["type"] == "MultiLineString"
        assert out["coordinates"]

    def test_empty_selection(self, two_squares_topology):
        land = two_squares_topology["objects"]["land"]
        assert mesh(two_squares_topology, land, lambda a, b: a is not b) == {
            "type": "MultiLineString",
            "coordinates": [],
        }
