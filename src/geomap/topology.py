"""TopoJSON decoding: topology objects to GeoJSON features and arc meshes."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Mapping, Sequence

from .errors import GeographyParseError
from .models import Feature, Geometry

_LOGGER = logging.getLogger("geomap.topology")

MeshFilter = Callable[[Mapping[str, Any], Mapping[str, Any]], bool]


class _ArcDecoder:
    """Delta-decodes and dequantizes topology arcs on first use."""

    def __init__(self, topology: Mapping[str, Any]):
        self._arcs: Sequence[Sequence[Sequence[float]]] = topology.get("arcs") or []
        transform = topology.get("transform")
        if transform:
            self._kx, self._ky = (float(v) for v in transform["scale"])
            self._dx, self._dy = (float(v) for v in transform["translate"])
            self._quantized = True
        else:
            self._kx = self._ky = 1.0
            self._dx = self._dy = 0.0
            self._quantized = False
        self._decoded: dict[int, list[list[float]]] = {}

    def arc(self, index: int) -> list[list[float]]:
        """Decoded coordinates of arc `index`; `~i` (negative) yields the reversed arc."""
        j = ~index if index < 0 else index
        decoded = self._decoded.get(j)
        if decoded is None:
            try:
                raw = self._arcs[j]
            except IndexError as exc:
                raise GeographyParseError(
                    f"Topology references missing arc {j}",
                    details={"arc": j, "arc_count": len(self._arcs)},
                ) from exc
            decoded = self._decode(raw)
            self._decoded[j] = decoded
        return decoded[::-1] if index < 0 else decoded

    def point(self, position: Sequence[float]) -> list[float]:
        if not self._quantized:
            return [float(v) for v in position]
        x, y, *rest = position
        return [x * self._kx + self._dx, y * self._ky + self._dy, *rest]

    def _decode(self, raw: Sequence[Sequence[float]]) -> list[list[float]]:
        if not self._quantized:
            return [[float(v) for v in position] for position in raw]
        x = y = 0.0
        out: list[list[float]] = []
        for position in raw:
            x += position[0]
            y += position[1]
            out.append([x * self._kx + self._dx, y * self._ky + self._dy, *position[2:]])
        return out


def _resolve_object(topology: Mapping[str, Any], obj: Mapping[str, Any] | str) -> Mapping[str, Any]:
    if isinstance(obj, str):
        objects = topology.get("objects") or {}
        if obj not in objects:
            raise GeographyParseError(f"Topology has no object named {obj!r}")
        return objects[obj]
    return obj


def _line(decoder: _ArcDecoder, arcs: Sequence[int]) -> list[list[float]]:
    points: list[list[float]] = []
    for index in arcs:
        if points:
            points.pop()
        points.extend(list(p) for p in decoder.arc(index))
    if points and len(points) < 2:
        points.append(list(points[0]))
    return points


def _ring(decoder: _ArcDecoder, arcs: Sequence[int]) -> list[list[float]]:
    points = _line(decoder, arcs)
    while points and len(points) < 4:
        points.append(list(points[0]))
    return points


def _polygon(decoder: _ArcDecoder, arcs: Sequence[Sequence[int]]) -> list[list[list[float]]]:
    return [_ring(decoder, ring) for ring in arcs]


def _geometry(decoder: _ArcDecoder, obj: Mapping[str, Any]) -> Geometry | None:
    kind = obj.get("type")
    if kind == "GeometryCollection":
        return {
            "type": kind,
            "geometries": [g for g in (_geometry(decoder, o) for o in obj.get("geometries") or []) if g],
        }
    if kind == "Point":
        return {"type": kind, "coordinates": decoder.point(obj["coordinates"])}
    if kind == "MultiPoint":
        return {"type": kind, "coordinates": [decoder.point(p) for p in obj["coordinates"]]}
    if kind == "LineString":
        return {"type": kind, "coordinates": _line(decoder, obj["arcs"])}
    if kind == "MultiLineString":
        return {"type": kind, "coordinates": [_line(decoder, arcs) for arcs in obj["arcs"]]}
    if kind == "Polygon":
        return {"type": kind, "coordinates": _polygon(decoder, obj["arcs"])}
    if kind == "MultiPolygon":
        return {"type": kind, "coordinates": [_polygon(decoder, arcs) for arcs in obj["arcs"]]}
    return None


def _feature(decoder: _ArcDecoder, obj: Mapping[str, Any]) -> Feature:
    out: Feature = {"type": "Feature"}
    if obj.get("id") is not None:
        out["id"] = obj["id"]
    if obj.get("bbox") is not None:
        out["bbox"] = obj["bbox"]
    out["properties"] = dict(obj.get("properties") or {})
    out["geometry"] = _geometry(decoder, obj)
    return out


def feature(topology: Mapping[str, Any], obj: Mapping[str, Any] | str) -> Feature:
    """Convert a topology object to a Feature, or a FeatureCollection for GeometryCollections."""
    target = _resolve_object(topology, obj)
    decoder = _ArcDecoder(topology)
    try:
        if target.get("type") == "GeometryCollection":
            return {
                "type": "FeatureCollection",
                "features": [_feature(decoder, g) for g in target.get("geometries") or []],
            }
        return _feature(decoder, target)
    except (KeyError, TypeError, ValueError) as exc:
        raise GeographyParseError("Malformed topology object", cause=exc) from exc


def _extract_arcs(obj: Mapping[str, Any], predicate: MeshFilter | None) -> list[int]:
    geoms_by_arc: dict[int, list[tuple[int, Mapping[str, Any]]]] = {}

    def extract(arcs: Any, depth: int, geom: Mapping[str, Any]) -> None:
        if depth == 0:
            j = ~arcs if arcs < 0 else arcs
            geoms_by_arc.setdefault(j, []).append((arcs, geom))
            return
        for item in arcs:
            extract(item, depth - 1, geom)

    def walk(geom: Mapping[str, Any]) -> None:
        kind = geom.get("type")
        if kind == "GeometryCollection":
            for child in geom.get("geometries") or []:
                walk(child)
        elif kind == "LineString":
            extract(geom["arcs"], 1, geom)
        elif kind in ("MultiLineString", "Polygon"):
            extract(geom["arcs"], 2, geom)
        elif kind == "MultiPolygon":
            extract(geom["arcs"], 3, geom)

    walk(obj)
    selected: list[int] = []
    for j in sorted(geoms_by_arc):
        geoms = geoms_by_arc[j]
        if predicate is None or predicate(geoms[0][1], geoms[-1][1]):
            selected.append(geoms[0][0])
    return selected


def mesh(
    topology: Mapping[str, Any],
    obj: Mapping[str, Any] | str | None = None,
    predicate: MeshFilter | None = None,
) -> Geometry:
    """MultiLineString of the arcs of `obj` accepted by `predicate`, stitched into lines.

    The predicate receives the first and last geometry sharing each arc, compared by
    identity: `a is b` selects exterior arcs, `a is not b` shared borders.
    """
    decoder = _ArcDecoder(topology)
    try:
        if obj is None:
            indices = list(range(len(topology.get("arcs") or [])))
        else:
            indices = _extract_arcs(_resolve_object(topology, obj), predicate)
        lines = [decoder.arc(index) for index in indices]
    except (KeyError, TypeError) as exc:
        raise GeographyParseError("Malformed topology object", cause=exc) from exc

    lines = [line for line in lines if len(line) > 1]
    if not lines:
        return {"type": "MultiLineString", "coordinates": []}

    shapely = _require_shapely()
    merged = shapely.ops.linemerge([[tuple(p[:2]) for p in line] for line in lines])
    geojson = shapely.geometry.mapping(merged)
    if geojson["type"] == "LineString":
        parts = [geojson["coordinates"]]
    elif geojson["type"] == "MultiLineString":
        parts = list(geojson["coordinates"])
    else:
        parts = []
    _LOGGER.debug("Mesh stitched %d arcs into %d lines", len(lines), len(parts))
    return {
        "type": "MultiLineString",
        "coordinates": [[list(p) for p in part] for part in parts],
    }


@lru_cache(maxsize=1)
def _require_shapely() -> Any:
    try:
        import shapely.geometry
        import shapely.ops
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for topology meshes") from exc
    return shapely
