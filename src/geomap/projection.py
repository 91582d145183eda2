"""Named cartographic projections on top of PROJ, with a d3-style contract.

Raw projections run through pyproj pipelines on the unit sphere, so scales
match the familiar d3-geo defaults. Everything around the raw projection
(three-axis rotation, clip angle, centering, scale, translate) lives here.
A `Projection` is immutable: each adjustment returns a new instance.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping, Sequence, Union

from .errors import ProjectionError
from .models import (
    Coordinates,
    Parallels,
    ProjectionConfig,
    RotationAngles,
    ScreenPoint,
    create_coordinates,
    create_parallels,
    create_rotation_angles,
)
from .validation import sanitize_string, validate_projection_config

_LOGGER = logging.getLogger("geomap.projection")

_EPSILON = 1e-6
_OUTLINE_STEP_DEG = 2.0

CAP_CENTER = "center"
CAP_ROTATE = "rotate"
CAP_SCALE = "scale"
CAP_PARALLELS = "parallels"

_BASE_CAPS = frozenset({CAP_CENTER, CAP_ROTATE, CAP_SCALE})
_CONIC_CAPS = _BASE_CAPS | {CAP_PARALLELS}

ProjectionFn = Callable[[Sequence[float]], Union[ScreenPoint, None]]


@dataclass(frozen=True, slots=True)
class ProjectionSpec:
    """Registry entry: how to build one named projection."""

    name: str
    proj: str
    default_scale: float
    aliases: tuple[str, ...] = ()
    capabilities: frozenset[str] = _BASE_CAPS
    clip_angle: float | None = None
    lat_limits: tuple[float, float] = (-90.0, 90.0)
    default_rotate: RotationAngles | None = None
    default_center: Coordinates | None = None
    default_parallels: Parallels | None = None

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


_REGISTRY_SPECS: tuple[ProjectionSpec, ...] = (
    ProjectionSpec("geoEqualEarth", "+proj=eqearth", 177.158, aliases=("equal-earth",)),
    ProjectionSpec("geoNaturalEarth1", "+proj=natearth", 175.295, aliases=("natural-earth",)),
    ProjectionSpec(
        "geoMercator",
        "+proj=merc",
        961 / (2 * math.pi),
        aliases=("mercator",),
        lat_limits=(-85.0511287798, 85.0511287798),
    ),
    ProjectionSpec("geoTransverseMercator", "+proj=tmerc", 159.155, aliases=("transverse-mercator",)),
    ProjectionSpec("geoEquirectangular", "+proj=eqc", 961 / (2 * math.pi), aliases=("equirectangular",)),
    ProjectionSpec(
        "geoOrthographic",
        "+proj=ortho",
        249.5,
        aliases=("orthographic",),
        clip_angle=90.0,
    ),
    ProjectionSpec(
        "geoAzimuthalEqualArea",
        "+proj=laea",
        124.75,
        aliases=("azimuthal-equal-area",),
        clip_angle=180.0 - 1e-3,
    ),
    ProjectionSpec(
        "geoAzimuthalEquidistant",
        "+proj=aeqd",
        79.4188,
        aliases=("azimuthal-equidistant",),
        clip_angle=180.0 - 1e-3,
    ),
    ProjectionSpec(
        "geoStereographic",
        "+proj=stere",
        250.0,
        aliases=("stereographic",),
        clip_angle=142.0,
    ),
    ProjectionSpec(
        "geoGnomonic",
        "+proj=gnom",
        144.049,
        aliases=("gnomonic",),
        clip_angle=60.0,
    ),
    ProjectionSpec(
        "geoConicEqualArea",
        "+proj=aea",
        155.424,
        aliases=("conic-equal-area",),
        capabilities=_CONIC_CAPS,
        default_parallels=create_parallels(0.0, 60.0),
    ),
    ProjectionSpec(
        "geoConicConformal",
        "+proj=lcc",
        109.5,
        aliases=("conic-conformal",),
        capabilities=_CONIC_CAPS,
        lat_limits=(-80.0, 90.0),
        default_parallels=create_parallels(30.0, 30.0),
    ),
    ProjectionSpec(
        "geoConicEquidistant",
        "+proj=eqdc",
        131.154,
        aliases=("conic-equidistant",),
        capabilities=_CONIC_CAPS,
        default_parallels=create_parallels(0.0, 60.0),
    ),
    ProjectionSpec(
        "geoAlbers",
        "+proj=aea",
        1070.0,
        aliases=("albers",),
        capabilities=_CONIC_CAPS,
        default_rotate=create_rotation_angles(96.0, 0.0, 0.0),
        default_center=create_coordinates(-0.6, 38.7),
        default_parallels=create_parallels(29.5, 45.5),
    ),
)

PROJECTION_REGISTRY: dict[str, ProjectionSpec] = {spec.name: spec for spec in _REGISTRY_SPECS}


def _lookup_key(name: str) -> str:
    key = name.strip().casefold().replace("-", "").replace("_", "").replace(" ", "")
    return key[3:] if key.startswith("geo") else key


def _build_index() -> dict[str, ProjectionSpec]:
    index: dict[str, ProjectionSpec] = {}
    for spec in PROJECTION_REGISTRY.values():
        for label in (spec.name, *spec.aliases):
            index[_lookup_key(label)] = spec
    return index


_INDEX = _build_index()


def register_projection(spec: ProjectionSpec) -> None:
    """Add or replace a named projection in the registry."""
    PROJECTION_REGISTRY[spec.name] = spec
    for label in (spec.name, *spec.aliases):
        _INDEX[_lookup_key(label)] = spec


def available_projections() -> list[str]:
    return sorted(PROJECTION_REGISTRY)


def resolve_projection_spec(name: str) -> ProjectionSpec:
    spec = _INDEX.get(_lookup_key(name))
    if spec is None:
        raise ProjectionError(
            f"Unknown projection: {name}",
            details={"available_projections": available_projections()},
        )
    return spec


@dataclass(frozen=True, slots=True)
class Projection:
    """Callable mapping (lon, lat) degrees to pixel coordinates, or None when clipped."""

    spec: ProjectionSpec
    scale_factor: float
    translation: tuple[float, float] = (480.0, 250.0)
    center_point: Coordinates = field(default_factory=lambda: create_coordinates(0.0, 0.0))
    rotation: RotationAngles = field(default_factory=lambda: create_rotation_angles(0.0, 0.0, 0.0))
    standard_parallels: Parallels | None = None
    _center_xy: tuple[float, float] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lon, lat = self.center_point
        cx, cy = _raw_forward(self._definition, [float(lon)], [float(lat)])
        if not (math.isfinite(cx[0]) and math.isfinite(cy[0])):
            raise ProjectionError(
                f"Center {tuple(self.center_point)} is not projectable with {self.spec.name}",
                details={"projection": self.spec.name},
            )
        object.__setattr__(self, "_center_xy", (cx[0], cy[0]))

    @classmethod
    def from_spec(cls, spec: ProjectionSpec) -> Projection:
        return cls(
            spec=spec,
            scale_factor=spec.default_scale,
            center_point=spec.default_center or create_coordinates(0.0, 0.0),
            rotation=spec.default_rotate or create_rotation_angles(0.0, 0.0, 0.0),
            standard_parallels=spec.default_parallels,
        )

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def _definition(self) -> str:
        definition = f"{self.spec.proj} +R=1"
        if self.standard_parallels is not None:
            p1, p2 = self.standard_parallels
            definition += f" +lat_1={p1:g} +lat_2={p2:g}"
        return definition

    def supports(self, capability: str) -> bool:
        return self.spec.supports(capability)

    def translate(self, point: Sequence[float]) -> Projection:
        return replace(self, translation=(float(point[0]), float(point[1])))

    def center(self, coordinates: Sequence[float]) -> Projection:
        self._require(CAP_CENTER)
        return replace(self, center_point=create_coordinates(coordinates[0], coordinates[1]))

    def rotate(self, angles: Sequence[float]) -> Projection:
        self._require(CAP_ROTATE)
        return replace(self, rotation=create_rotation_angles(*angles))

    def scale(self, k: float) -> Projection:
        self._require(CAP_SCALE)
        return replace(self, scale_factor=float(k))

    def parallels(self, values: Sequence[float]) -> Projection:
        self._require(CAP_PARALLELS)
        return replace(self, standard_parallels=create_parallels(values[0], values[1]))

    def _require(self, capability: str) -> None:
        if not self.supports(capability):
            raise ProjectionError(
                f"Projection {self.spec.name} does not support {capability}()",
                details={"projection": self.spec.name, "capability": capability},
            )

    def __call__(self, coordinates: Sequence[float]) -> ScreenPoint | None:
        return self.project_many([coordinates])[0]

    def project_many(self, points: Iterable[Sequence[float]]) -> list[ScreenPoint | None]:
        return [point for point, _ in self._project_tracked(points)]

    def project_line(self, points: Sequence[Sequence[float]]) -> list[list[ScreenPoint]]:
        """Project a polyline, splitting it where points are clipped or cross the antimeridian."""
        segments: list[list[ScreenPoint]] = []
        current: list[ScreenPoint] = []
        prev_lon: float | None = None
        for projected, rotated_lon in self._project_tracked(points):
            if projected is None:
                if current:
                    segments.append(current)
                current = []
                prev_lon = None
                continue
            if prev_lon is not None and _is_antimeridian_jump(prev_lon, rotated_lon):
                segments.append(current)
                current = []
            current.append(projected)
            prev_lon = rotated_lon
        if current:
            segments.append(current)
        return segments

    def invert(self, point: Sequence[float]) -> Coordinates | None:
        k = self.scale_factor
        tx, ty = self.translation
        cx, cy = self._center_xy
        x = (float(point[0]) - tx) / k + cx
        y = (ty - float(point[1])) / k + cy
        lams, phis = _raw_inverse(self._definition, [x], [y])
        lam, phi = lams[0], phis[0]
        if not (math.isfinite(lam) and math.isfinite(phi)):
            return None
        if self.spec.clip_angle is not None and not self._visible(lam, phi):
            return None
        lon, lat = _rotate_invert(lam, phi, self.rotation)
        return create_coordinates(lon, lat)

    def outline(self) -> list[list[ScreenPoint]]:
        """Projected boundary of the whole globe, as closed rings of pixel points."""
        if self.spec.clip_angle is not None:
            ring = _horizon_circle(self.spec.clip_angle - _EPSILON)
        else:
            ring = _frame_rectangle(*self.spec.lat_limits)
        lons = [p[0] for p in ring]
        lats = [p[1] for p in ring]
        xs, ys = _raw_forward(self._definition, lons, lats)
        screen = [
            self._to_screen(x, y) for x, y in zip(xs, ys) if math.isfinite(x) and math.isfinite(y)
        ]
        return [screen] if len(screen) > 2 else []

    def _project_tracked(
        self, points: Iterable[Sequence[float]]
    ) -> list[tuple[ScreenPoint | None, float]]:
        rotated: list[tuple[float, float] | None] = []
        for point in points:
            lam, phi = _rotate_forward(float(point[0]), float(point[1]), self.rotation)
            if self.spec.clip_angle is not None and not self._visible(lam, phi):
                rotated.append(None)
                continue
            lo, hi = self.spec.lat_limits
            rotated.append((lam, min(max(phi, lo), hi)))

        visible = [item for item in rotated if item is not None]
        if visible:
            xs, ys = _raw_forward(
                self._definition,
                [item[0] for item in visible],
                [item[1] for item in visible],
            )
        else:
            xs, ys = [], []

        out: list[tuple[ScreenPoint | None, float]] = []
        idx = 0
        for item in rotated:
            if item is None:
                out.append((None, 0.0))
                continue
            x, y = xs[idx], ys[idx]
            idx += 1
            if not (math.isfinite(x) and math.isfinite(y)):
                out.append((None, item[0]))
                continue
            out.append((self._to_screen(x, y), item[0]))
        return out

    def _to_screen(self, x: float, y: float) -> ScreenPoint:
        k = self.scale_factor
        tx, ty = self.translation
        cx, cy = self._center_xy
        return (tx + k * (x - cx), ty - k * (y - cy))

    def _visible(self, lam: float, phi: float) -> bool:
        clip = self.spec.clip_angle
        if clip is None:
            return True
        cos_distance = math.cos(math.radians(phi)) * math.cos(math.radians(lam))
        return cos_distance > math.cos(math.radians(clip)) + _EPSILON


def make_projection(
    projection: str | ProjectionFn = "geoEqualEarth",
    config: ProjectionConfig | Mapping[str, Any] | None = None,
    width: float = 800,
    height: float = 600,
) -> ProjectionFn:
    """Build a projection centered in a `width` x `height` viewport.

    A callable is returned unchanged (caller-configured custom projection).
    Config adjustments are applied only when provided and supported.
    """
    if callable(projection):
        return projection

    name = sanitize_string(projection)
    validated = validate_projection_config(config if config is not None else {})
    spec = resolve_projection_spec(name)

    proj = Projection.from_spec(spec).translate((width / 2, height / 2))
    if validated.parallels is not None and proj.supports(CAP_PARALLELS):
        proj = proj.parallels(validated.parallels)
    if validated.center is not None and proj.supports(CAP_CENTER):
        proj = proj.center(validated.center)
    if validated.rotate is not None and proj.supports(CAP_ROTATE):
        proj = proj.rotate(validated.rotate)
    if validated.scale is not None and proj.supports(CAP_SCALE):
        proj = proj.scale(validated.scale)

    _LOGGER.debug(
        "Built projection %s (scale=%.3f, translate=%s, rotate=%s)",
        spec.name,
        proj.scale_factor,
        proj.translation,
        tuple(proj.rotation),
    )
    return proj


def _is_antimeridian_jump(prev_lon: float, lon: float) -> bool:
    return abs(lon - prev_lon) > 180.0


def _wrap_pi(lam: float) -> float:
    if lam > math.pi:
        return lam - 2 * math.pi
    if lam < -math.pi:
        return lam + 2 * math.pi
    return lam


def _clamp_unit(value: float) -> float:
    return max(-1.0, min(1.0, value))


def _rotate_forward(lon: float, lat: float, rotation: RotationAngles) -> tuple[float, float]:
    d_lam, d_phi, d_gamma = (math.radians(v) for v in rotation)
    lam = _wrap_pi(math.radians(lon) + d_lam)
    phi = math.radians(lat)
    if d_phi or d_gamma:
        cos_dphi, sin_dphi = math.cos(d_phi), math.sin(d_phi)
        cos_dgamma, sin_dgamma = math.cos(d_gamma), math.sin(d_gamma)
        cos_phi = math.cos(phi)
        x = math.cos(lam) * cos_phi
        y = math.sin(lam) * cos_phi
        z = math.sin(phi)
        k = z * cos_dphi + x * sin_dphi
        lam = math.atan2(y * cos_dgamma - k * sin_dgamma, x * cos_dphi - z * sin_dphi)
        phi = math.asin(_clamp_unit(k * cos_dgamma + y * sin_dgamma))
    return (math.degrees(lam), math.degrees(phi))


def _rotate_invert(lam_deg: float, phi_deg: float, rotation: RotationAngles) -> tuple[float, float]:
    d_lam, d_phi, d_gamma = (math.radians(v) for v in rotation)
    lam = math.radians(lam_deg)
    phi = math.radians(phi_deg)
    if d_phi or d_gamma:
        cos_dphi, sin_dphi = math.cos(d_phi), math.sin(d_phi)
        cos_dgamma, sin_dgamma = math.cos(d_gamma), math.sin(d_gamma)
        cos_phi = math.cos(phi)
        x = math.cos(lam) * cos_phi
        y = math.sin(lam) * cos_phi
        z = math.sin(phi)
        k = z * cos_dgamma - y * sin_dgamma
        lam = math.atan2(y * cos_dgamma + z * sin_dgamma, x * cos_dphi + k * sin_dphi)
        phi = math.asin(_clamp_unit(k * cos_dphi - x * sin_dphi))
    lam = _wrap_pi(lam - d_lam)
    return (math.degrees(lam), math.degrees(phi))


def _horizon_circle(radius_deg: float) -> list[tuple[float, float]]:
    """Points at angular distance `radius_deg` from (0, 0), as (lon, lat) degrees."""
    radius = math.radians(radius_deg)
    ring: list[tuple[float, float]] = []
    steps = int(360 / _OUTLINE_STEP_DEG)
    for idx in range(steps + 1):
        bearing = math.radians(idx * _OUTLINE_STEP_DEG)
        lat = math.asin(_clamp_unit(math.sin(radius) * math.cos(bearing)))
        lon = math.atan2(math.sin(bearing) * math.sin(radius), math.cos(radius))
        ring.append((math.degrees(lon), math.degrees(lat)))
    return ring


def _frame_rectangle(min_lat: float, max_lat: float) -> list[tuple[float, float]]:
    west = -180.0 + _EPSILON
    east = 180.0 - _EPSILON
    south = min_lat + _EPSILON
    north = max_lat - _EPSILON
    ring: list[tuple[float, float]] = []
    lat_steps = max(int((north - south) / _OUTLINE_STEP_DEG), 1)
    lon_steps = max(int((east - west) / _OUTLINE_STEP_DEG), 1)
    for idx in range(lat_steps + 1):
        ring.append((west, north - (north - south) * idx / lat_steps))
    for idx in range(1, lon_steps + 1):
        ring.append((west + (east - west) * idx / lon_steps, south))
    for idx in range(1, lat_steps + 1):
        ring.append((east, south + (north - south) * idx / lat_steps))
    for idx in range(1, lon_steps + 1):
        ring.append((east - (east - west) * idx / lon_steps, north))
    return ring


def _raw_forward(definition: str, lons: list[float], lats: list[float]) -> tuple[list[float], list[float]]:
    xs, ys = _pipeline(definition).transform(lons, lats)
    return ([float(v) for v in xs], [float(v) for v in ys])


def _raw_inverse(definition: str, xs: list[float], ys: list[float]) -> tuple[list[float], list[float]]:
    lons, lats = _pipeline(definition).transform(xs, ys, direction=_require_transform_direction().INVERSE)
    return ([float(v) for v in lons], [float(v) for v in lats])


@lru_cache(maxsize=64)
def _pipeline(definition: str) -> Any:
    pyproj = _require_pyproj()
    return pyproj.Transformer.from_pipeline(
        "+proj=pipeline +step +proj=unitconvert +xy_in=deg +xy_out=rad "
        f"+step {definition}"
    )


@lru_cache(maxsize=1)
def _require_pyproj() -> Any:
    try:
        import pyproj
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for map projections") from exc
    return pyproj


@lru_cache(maxsize=1)
def _require_transform_direction() -> Any:
    _require_pyproj()
    from pyproj.enums import TransformDirection

    return TransformDirection
