"""SVG path generation for GeoJSON geometries under a projection."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping, Sequence

from .models import GraticuleStep, ScreenPoint, create_graticule_step
from .projection import ProjectionFn

_LOGGER = logging.getLogger("geomap.path")

DEFAULT_POINT_RADIUS = 4.5
_GRATICULE_PRECISION_DEG = 2.5
_GRATICULE_MINOR_LAT = 80.0
_GREAT_CIRCLE_STEP_DEG = 2.5
_FRAME_EPSILON = 1e-6


def _fmt(value: float, digits: int) -> str:
    text = f"{value:.{digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


class GeoPath:
    """Serialize GeoJSON objects to SVG path data via a projection.

    Accepts geometries, Features, FeatureCollections, and the `{"type": "Sphere"}`
    pseudo-geometry. Returns "" when nothing is drawable.
    """

    def __init__(self, projection: ProjectionFn, point_radius: float = DEFAULT_POINT_RADIUS, digits: int = 3):
        self.projection = projection
        self.point_radius = float(point_radius)
        self.digits = digits

    def __call__(self, obj: Mapping[str, Any] | None) -> str:
        if not obj:
            return ""
        return "".join(self._render(obj))

    def sphere(self) -> str:
        return self({"type": "Sphere"})

    def graticule(self, step: Sequence[float] = (10.0, 10.0)) -> str:
        return self(graticule(step))

    def _render(self, obj: Mapping[str, Any]) -> Iterable[str]:
        kind = obj.get("type")
        if kind == "FeatureCollection":
            for feature in obj.get("features") or []:
                yield from self._render(feature)
        elif kind == "Feature":
            geometry = obj.get("geometry")
            if geometry:
                yield from self._render(geometry)
        elif kind == "GeometryCollection":
            for geometry in obj.get("geometries") or []:
                yield from self._render(geometry)
        elif kind == "Sphere":
            for ring in self._outline():
                yield self._polyline(ring, closed=True)
        elif kind == "Point":
            yield from self._points([obj.get("coordinates")])
        elif kind == "MultiPoint":
            yield from self._points(obj.get("coordinates") or [])
        elif kind == "LineString":
            yield from self._line(obj.get("coordinates") or [])
        elif kind == "MultiLineString":
            for line in obj.get("coordinates") or []:
                yield from self._line(line)
        elif kind == "Polygon":
            yield from self._polygon(obj.get("coordinates") or [])
        elif kind == "MultiPolygon":
            for polygon in obj.get("coordinates") or []:
                yield from self._polygon(polygon)
        else:
            _LOGGER.debug("Skipping unsupported geometry type: %r", kind)

    def _points(self, coordinates: Iterable[Any]) -> Iterable[str]:
        r = self.point_radius
        for coords in coordinates:
            if not coords:
                continue
            projected = self.projection(coords)
            if projected is None:
                continue
            x, y = (self._num(v) for v in projected)
            rs, r2 = self._num(r), self._num(2 * r)
            yield f"M{x},{y}m0,{rs}a{rs},{rs} 0 1,1 0,-{r2}a{rs},{rs} 0 1,1 0,{r2}z"

    def _line(self, coordinates: Sequence[Any]) -> Iterable[str]:
        for segment in self._segments(coordinates):
            if len(segment) > 1:
                yield self._polyline(segment, closed=False)

    def _polygon(self, rings: Sequence[Sequence[Any]]) -> Iterable[str]:
        for ring in rings:
            if len(ring) < 2:
                continue
            segments = self._segments(ring)
            if len(segments) == 1 and len(segments[0]) == len(ring):
                points = segments[0]
                if list(ring[0]) == list(ring[-1]):
                    points = points[:-1]
                yield self._polyline(points, closed=True)
                continue
            for segment in segments:
                if len(segment) > 1:
                    yield self._polyline(segment, closed=False)

    def _segments(self, coordinates: Sequence[Any]) -> list[list[ScreenPoint]]:
        project_line = getattr(self.projection, "project_line", None)
        if project_line is not None:
            return project_line(coordinates)

        segments: list[list[ScreenPoint]] = []
        current: list[ScreenPoint] = []
        prev_lon: float | None = None
        for coords in coordinates:
            projected = self.projection(coords)
            if projected is None:
                if current:
                    segments.append(current)
                current = []
                prev_lon = None
                continue
            lon = float(coords[0])
            if prev_lon is not None and abs(lon - prev_lon) > 180.0:
                segments.append(current)
                current = []
            current.append(projected)
            prev_lon = lon
        if current:
            segments.append(current)
        return segments

    def _outline(self) -> list[list[ScreenPoint]]:
        outline = getattr(self.projection, "outline", None)
        if outline is not None:
            return outline()
        frame = [(-180.0 + _FRAME_EPSILON, lat) for lat in _steps(90.0 - _FRAME_EPSILON, -90.0 + _FRAME_EPSILON)]
        frame += [(180.0 - _FRAME_EPSILON, lat) for lat in _steps(-90.0 + _FRAME_EPSILON, 90.0 - _FRAME_EPSILON)]
        projected = [self.projection(point) for point in frame]
        ring = [point for point in projected if point is not None]
        return [ring] if len(ring) > 2 else []

    def _polyline(self, points: Sequence[ScreenPoint], closed: bool) -> str:
        head, *tail = points
        parts = [f"M{self._num(head[0])},{self._num(head[1])}"]
        parts.extend(f"L{self._num(x)},{self._num(y)}" for x, y in tail)
        if closed:
            parts.append("Z")
        return "".join(parts)

    def _num(self, value: float) -> str:
        return _fmt(value, self.digits)


def make_path(projection: ProjectionFn, point_radius: float = DEFAULT_POINT_RADIUS) -> GeoPath:
    return GeoPath(projection, point_radius=point_radius)


def _steps(start: float, stop: float, step: float = _GRATICULE_PRECISION_DEG) -> list[float]:
    count = max(int(math.ceil(abs(stop - start) / step)), 1)
    return [start + (stop - start) * idx / count for idx in range(count + 1)]


def graticule(step: Sequence[float] = (10.0, 10.0)) -> dict[str, Any]:
    """MultiLineString of meridians and parallels every `step` degrees.

    Meridians on multiples of 90 run pole to pole; the rest stop at +/-80.
    """
    grid: GraticuleStep = create_graticule_step(step[0], step[1])
    if grid.dx <= 0 or grid.dy <= 0:
        raise ValueError("graticule step must be positive")

    lines: list[list[list[float]]] = []
    lon = -180.0
    while lon < 180.0:
        limit = 90.0 - _FRAME_EPSILON if lon % 90 == 0 else _GRATICULE_MINOR_LAT
        lines.append([[lon, lat] for lat in _steps(-limit, limit)])
        lon += grid.dx

    lat = math.ceil(-_GRATICULE_MINOR_LAT / grid.dy) * grid.dy
    while lat <= _GRATICULE_MINOR_LAT:
        lines.append([[x, lat] for x in _steps(-180.0, 180.0)])
        lat += grid.dy
    return {"type": "MultiLineString", "coordinates": lines}


def interpolate_great_circle(
    start: Sequence[float],
    end: Sequence[float],
    step_deg: float = _GREAT_CIRCLE_STEP_DEG,
) -> list[list[float]]:
    """Points along the great-circle arc from `start` to `end`, both included."""
    lon0, lat0 = (math.radians(float(v)) for v in start[:2])
    lon1, lat1 = (math.radians(float(v)) for v in end[:2])
    a = (math.cos(lat0) * math.cos(lon0), math.cos(lat0) * math.sin(lon0), math.sin(lat0))
    b = (math.cos(lat1) * math.cos(lon1), math.cos(lat1) * math.sin(lon1), math.sin(lat1))
    dot = max(-1.0, min(1.0, sum(p * q for p, q in zip(a, b))))
    angle = math.acos(dot)
    if angle < 1e-12 or math.isclose(angle, math.pi):
        return [[float(start[0]), float(start[1])], [float(end[0]), float(end[1])]]

    count = max(int(math.ceil(math.degrees(angle) / step_deg)), 1)
    sin_angle = math.sin(angle)
    out: list[list[float]] = []
    for idx in range(count + 1):
        t = idx / count
        wa = math.sin((1 - t) * angle) / sin_angle
        wb = math.sin(t * angle) / sin_angle
        x, y, z = (wa * p + wb * q for p, q in zip(a, b))
        out.append([math.degrees(math.atan2(y, x)), math.degrees(math.atan2(z, math.hypot(x, y)))])
    out[0] = [float(start[0]), float(start[1])]
    out[-1] = [float(end[0]), float(end[1])]
    return out


def line_geometry(
    from_: Sequence[float] = (0.0, 0.0),
    to: Sequence[float] = (0.0, 0.0),
    coordinates: Sequence[Sequence[float]] | None = None,
) -> dict[str, Any]:
    """LineString through `coordinates` (or `from_` -> `to`) following great circles."""
    vertices = list(coordinates) if coordinates else [from_, to]
    if len(vertices) < 2:
        return {"type": "LineString", "coordinates": [list(v) for v in vertices]}
    points: list[list[float]] = []
    for start, end in zip(vertices, vertices[1:]):
        arc = interpolate_great_circle(start, end)
        points.extend(arc if not points else arc[1:])
    return {"type": "LineString", "coordinates": points}
