"""Unit tests for map state, provider scoping, and prepared geographies."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from geomap.config import MapConfig
from geomap.errors import ContextError, ErrorKind, GeographyLoadError, ValidationError
from geomap.geographies import GeographyFetcher
from geomap.models import GeographyData, ProjectionConfig
from geomap.state import Geographies, MapState, map_provider, use_map_context


def identity(coords):
    return (float(coords[0]), float(coords[1]))


# ===========================================================================
# MapState
# ===========================================================================


class TestMapState:
    def test_defaults(self):
        state = MapState()
        assert (state.width, state.height) == (800, 600)
        assert state.projection.name == "geoEqualEarth"
        assert state.projection_config == ProjectionConfig()

    def test_projection_and_path_are_memoized(self):
        state = MapState()
        assert state.projection is state.projection
        assert state.path is state.path
        assert state.path.projection is state.projection

    def test_size_change_rebuilds_projection_and_path(self):
        state = MapState()
        projection, path = state.projection, state.path
        state.set_size(1000, 500)
        assert state.projection is not projection
        assert state.path is not path
        assert state.projection((0, 0)) == pytest.approx((500, 250))

    def test_projection_config_applied(self):
        state = MapState(projection="geoMercator", projection_config={"scale": 100})
        assert state.projection.scale_factor == 100
        state.set_projection_config({"scale": 250})
        assert state.projection.scale_factor == 250

    def test_subscribers_only_see_real_changes(self):
        state = MapState()
        calls = []
        unsubscribe = state.subscribe(calls.append)
        state.set_size(800, 600)
        state.set_projection("geoEqualEarth")
        assert calls == []
        state.set_projection("geoMercator")
        assert calls == [state]
        unsubscribe()
        state.set_size(100, 100)
        assert calls == [state]

    def test_update_many_fields_notifies_once(self):
        state = MapState()
        calls = []
        state.subscribe(calls.append)
        state.update(width=400, height=200, projection="geoMercator", projection_config={"scale": 80})
        assert len(calls) == 1

    def test_invalid_size(self):
        with pytest.raises(ValidationError):
            MapState(width=0)

    def test_from_config(self):
        state = MapState.from_config(MapConfig(width=300, height=200, projection="geoOrthographic"))
        assert (state.width, state.height) == (300, 200)
        assert state.projection.name == "geoOrthographic"

    def test_custom_projection_callable(self):
        state = MapState(projection=identity)
        assert state.projection is identity
        assert state.path({"type": "LineString", "coordinates": [[0, 0], [1, 1]]}) == "M0,0L1,1"


# ===========================================================================
# Provider scope
# ===========================================================================


class TestMapProvider:
    def test_context_required(self):
        with pytest.raises(ContextError) as exc_info:
            use_map_context()
        assert exc_info.value.kind is ErrorKind.CONTEXT_ERROR

    def test_provider_scopes_state(self):
        with map_provider(width=400, height=300) as state:
            assert use_map_context() is state
            assert state.width == 400
        with pytest.raises(ContextError):
            use_map_context()

    def test_nested_providers(self):
        outer = MapState()
        inner = MapState(width=100, height=100)
        with map_provider(outer):
            with map_provider(inner):
                assert use_map_context() is inner
            assert use_map_context() is outer


# ===========================================================================
# Geographies
# ===========================================================================


class TestGeographies:
    def test_features_prepared(self, feature_collection):
        geos = Geographies(feature_collection, state=MapState(projection=identity))
        assert [g.id for g in geos.geographies] == ["sq", "pt"]
        assert geos.outline == ""
        assert geos.borders == ""
        assert geos.data.center is None

    def test_topology_outline_and_borders(self, two_squares_topology):
        geos = Geographies(two_squares_topology, state=MapState(projection=identity))
        assert len(geos.geographies) == 2
        assert geos.outline.startswith("M")
        assert geos.borders in ("M1,0L1,1", "M1,1L1,0")

    def test_data_cached_until_path_changes(self, feature_collection):
        state = MapState(projection=identity)
        geos = Geographies(feature_collection, state=state)
        first = geos.data
        assert geos.data is first
        state.set_size(1000, 1000)
        assert geos.data is first
        state.set_projection(lambda c: (c[0] * 2, c[1] * 2))
        assert geos.data is not first
        assert geos.geographies[1].svg_path.startswith("M10,10")

    def test_extraction_reused_when_only_path_changes(self, two_squares_topology, monkeypatch):
        from geomap.geographies import get_mesh

        mesh_spy = MagicMock(wraps=get_mesh)
        monkeypatch.setattr("geomap.state.get_mesh", mesh_spy)
        parse = MagicMock(side_effect=lambda features: features)
        state = MapState()
        geos = Geographies(two_squares_topology, state=state, parse_geographies=parse)
        first = geos.data
        state.set_size(1000, 500)
        second = geos.data
        assert second is not first
        assert len(second.geographies) == 2
        assert second.geographies[0].svg_path != first.geographies[0].svg_path
        assert parse.call_count == 1
        assert mesh_spy.call_count == 1

    def test_extraction_repeated_for_new_geography(self, feature_collection, two_squares_topology):
        parse = MagicMock(side_effect=lambda features: features)
        geos = Geographies(feature_collection, state=MapState(projection=identity), parse_geographies=parse)
        geos.data
        geos.set_geography(two_squares_topology)
        assert [g.id for g in geos.geographies] == ["A", "B"]
        assert parse.call_count == 2

    def test_center_from_projection_invert(self, feature_collection):
        geos = Geographies(feature_collection, state=MapState())
        assert geos.data.center == pytest.approx((0, 0), abs=1e-6)

    def test_parse_hook(self, feature_collection):
        geos = Geographies(
            feature_collection,
            state=MapState(projection=identity),
            parse_geographies=lambda features: features[:1],
        )
        assert [g.id for g in geos.geographies] == ["sq"]

    def test_uses_provider_state(self, feature_collection):
        with map_provider(projection=identity):
            geos = Geographies(feature_collection)
        assert len(geos.geographies) == 2

    def test_url_source(self, deferred_executor, feature_collection):
        fetcher = MagicMock(spec=GeographyFetcher)
        fetcher.fetch.return_value = feature_collection
        geos = Geographies(
            "https://cdn.example.com/world.json",
            state=MapState(projection=identity),
            fetcher=fetcher,
            executor=deferred_executor,
        )
        assert geos.loading
        assert geos.data == GeographyData()
        deferred_executor.run(0)
        assert not geos.loading
        assert len(geos.geographies) == 2

    def test_load_error(self, inline_executor):
        errors = []
        fetcher = MagicMock(spec=GeographyFetcher)
        fetcher.fetch.side_effect = GeographyLoadError("Failed to fetch geography: Not Found")
        geos = Geographies(
            "https://cdn.example.com/world.json",
            state=MapState(projection=identity),
            on_error=errors.append,
            fetcher=fetcher,
            executor=inline_executor,
        )
        assert geos.error is errors[0]
        assert geos.geographies == ()

    def test_set_geography(self, feature_collection, two_squares_topology):
        geos = Geographies(feature_collection, state=MapState(projection=identity))
        geos.set_geography(two_squares_topology)
        assert [g.id for g in geos.geographies] == ["A", "B"]
