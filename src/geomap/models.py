"""Domain models shared across the map pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, NamedTuple, NewType

Longitude = NewType("Longitude", float)
Latitude = NewType("Latitude", float)

Feature = dict[str, Any]
Geometry = dict[str, Any]
ScreenPoint = tuple[float, float]


class Coordinates(NamedTuple):
    """A (longitude, latitude) pair in degrees."""

    lon: Longitude
    lat: Latitude


class ScaleExtent(NamedTuple):
    min_zoom: float
    max_zoom: float


class TranslateExtent(NamedTuple):
    """Pan bounds in transform space: top-left and bottom-right corners."""

    top_left: tuple[float, float]
    bottom_right: tuple[float, float]

    @classmethod
    def unbounded(cls) -> TranslateExtent:
        inf = float("inf")
        return cls((-inf, -inf), (inf, inf))

    @property
    def is_bounded(self) -> bool:
        values = (*self.top_left, *self.bottom_right)
        return all(abs(value) != float("inf") for value in values)


class RotationAngles(NamedTuple):
    lam: float
    phi: float
    gamma: float = 0.0


class Parallels(NamedTuple):
    p1: float
    p2: float


class GraticuleStep(NamedTuple):
    dx: float
    dy: float


def create_longitude(value: float) -> Longitude:
    return Longitude(float(value))


def create_latitude(value: float) -> Latitude:
    return Latitude(float(value))


def create_coordinates(lon: float, lat: float) -> Coordinates:
    return Coordinates(create_longitude(lon), create_latitude(lat))


def create_scale_extent(min_zoom: float, max_zoom: float) -> ScaleExtent:
    return ScaleExtent(float(min_zoom), float(max_zoom))


def create_translate_extent(
    top_left: tuple[float, float],
    bottom_right: tuple[float, float],
) -> TranslateExtent:
    return TranslateExtent(
        (float(top_left[0]), float(top_left[1])),
        (float(bottom_right[0]), float(bottom_right[1])),
    )


def create_rotation_angles(lam: float, phi: float, gamma: float = 0.0) -> RotationAngles:
    return RotationAngles(float(lam), float(phi), float(gamma))


def create_parallels(p1: float, p2: float) -> Parallels:
    return Parallels(float(p1), float(p2))


def create_graticule_step(dx: float, dy: float) -> GraticuleStep:
    return GraticuleStep(float(dx), float(dy))


@dataclass(frozen=True, slots=True)
class ProjectionConfig:
    """Optional projection adjustments applied on top of a named projection."""

    center: Coordinates | None = None
    rotate: RotationAngles | None = None
    scale: float | None = None
    parallels: Parallels | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.center is not None:
            out["center"] = [self.center.lon, self.center.lat]
        if self.rotate is not None:
            out["rotate"] = list(self.rotate)
        if self.scale is not None:
            out["scale"] = self.scale
        if self.parallels is not None:
            out["parallels"] = list(self.parallels)
        return out


@dataclass(frozen=True, slots=True)
class Position:
    """Viewport center in geographic space plus the current zoom level."""

    coordinates: Coordinates
    zoom: float


@dataclass(frozen=True, slots=True)
class PreparedFeature:
    """A feature with its projected SVG path for the current path generator."""

    key: str
    feature: Mapping[str, Any]
    svg_path: str

    @property
    def id(self) -> Any:
        return self.feature.get("id")

    @property
    def properties(self) -> Mapping[str, Any]:
        props = self.feature.get("properties")
        return props if isinstance(props, Mapping) else {}

    @property
    def geometry(self) -> Mapping[str, Any] | None:
        return self.feature.get("geometry")

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.feature)
        out["svgPath"] = self.svg_path
        out["rsmKey"] = self.key
        return out


@dataclass(frozen=True, slots=True)
class Mesh:
    """Outline (unshared arcs) and borders (shared arcs) of a topology object."""

    outline: Geometry | None = None
    borders: Geometry | None = None


@dataclass(frozen=True, slots=True)
class PreparedMesh:
    outline: str | None = None
    borders: str | None = None

    def to_dict(self) -> dict[str, str]:
        out: dict[str, str] = {}
        if self.outline:
            out["outline"] = self.outline
        if self.borders:
            out["borders"] = self.borders
        return out


@dataclass(frozen=True, slots=True)
class SRIConfig:
    """Subresource-integrity expectation for fetched geography bodies."""

    algorithm: str
    hash: str
    enforce_integrity: bool = True


@dataclass(frozen=True, slots=True)
class GeographyEventData:
    geography: Mapping[str, Any]
    centroid: Coordinates | None
    bounds: tuple[Coordinates, Coordinates] | None
    coordinates: Coordinates | None


@dataclass(frozen=True, slots=True)
class ZoomPanContext:
    """Snapshot of the transform shared with drawing primitives."""

    x: float = 0.0
    y: float = 0.0
    k: float = 1.0
    transform_string: str = "translate(0 0) scale(1)"


@dataclass(frozen=True, slots=True)
class GeographyData:
    geographies: tuple[PreparedFeature, ...] = ()
    outline: str = ""
    borders: str = ""
    center: Coordinates | None = None
