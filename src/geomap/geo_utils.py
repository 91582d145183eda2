"""Per-feature helpers: centroid, bounds, and representative coordinates."""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Any, Mapping

from .models import Coordinates, GeographyEventData, create_coordinates

_LOGGER = logging.getLogger("geomap.geo_utils")


def _in_range(lon: float, lat: float) -> bool:
    return math.isfinite(lon) and math.isfinite(lat) and abs(lon) <= 180 and abs(lat) <= 90


def _shape(geography: Mapping[str, Any] | None) -> Any | None:
    if not geography or not geography.get("geometry"):
        return None
    shapely_geometry = _require_shapely_geometry()
    try:
        geom = shapely_geometry.shape(geography["geometry"])
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
        _LOGGER.debug("Cannot build shape for geography %r: %s", geography.get("id"), exc)
        return None
    return None if geom.is_empty else geom


def get_geography_centroid(geography: Mapping[str, Any] | None) -> Coordinates | None:
    geom = _shape(geography)
    if geom is None:
        return None
    centroid = geom.centroid
    if centroid.is_empty or not _in_range(centroid.x, centroid.y):
        return None
    return create_coordinates(centroid.x, centroid.y)


def get_geography_bounds(geography: Mapping[str, Any] | None) -> tuple[Coordinates, Coordinates] | None:
    """South-west and north-east corners of the geography's extent."""
    geom = _shape(geography)
    if geom is None:
        return None
    west, south, east, north = geom.bounds
    if not (_in_range(west, south) and _in_range(east, north)):
        return None
    return (create_coordinates(west, south), create_coordinates(east, north))


def _first_position(geometry: Mapping[str, Any]) -> Any:
    kind = geometry.get("type")
    coords = geometry.get("coordinates")
    depth = {
        "Point": 0,
        "LineString": 1,
        "MultiPoint": 1,
        "Polygon": 2,
        "MultiLineString": 2,
        "MultiPolygon": 3,
    }.get(kind)
    if kind == "GeometryCollection":
        children = geometry.get("geometries") or []
        return _first_position(children[0]) if children and children[0] else None
    if depth is None:
        return None
    for _ in range(depth):
        if not isinstance(coords, (list, tuple)) or not coords:
            return None
        coords = coords[0]
    return coords


def get_geography_coordinates(geography: Mapping[str, Any] | None) -> Coordinates | None:
    """First vertex of the geography's geometry."""
    if not geography or not geography.get("geometry"):
        return None
    position = _first_position(geography["geometry"])
    if not isinstance(position, (list, tuple)) or len(position) < 2:
        return None
    lon, lat = position[0], position[1]
    if isinstance(lon, bool) or isinstance(lat, bool):
        return None
    if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
        return None
    return create_coordinates(lon, lat)


def get_best_geography_coordinates(geography: Mapping[str, Any] | None) -> Coordinates | None:
    return get_geography_centroid(geography) or get_geography_coordinates(geography)


def is_valid_coordinates(coords: Any) -> bool:
    if not isinstance(coords, (list, tuple)) or len(coords) != 2:
        return False
    lon, lat = coords
    if isinstance(lon, bool) or isinstance(lat, bool):
        return False
    if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
        return False
    return _in_range(lon, lat)


def geography_event_data(geography: Mapping[str, Any]) -> GeographyEventData:
    return GeographyEventData(
        geography=geography,
        centroid=get_geography_centroid(geography),
        bounds=get_geography_bounds(geography),
        coordinates=get_geography_coordinates(geography),
    )


@lru_cache(maxsize=1)
def _require_shapely_geometry() -> Any:
    try:
        import shapely.geometry
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for geography centroids and bounds") from exc
    return shapely.geometry
