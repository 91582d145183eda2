"""Shared map state: viewport, memoised projection and path, and its scope."""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Iterator, Mapping

from .config import MapConfig
from .errors import ContextError, GeographyError
from .geographies import (
    Geography,
    GeographyFetcher,
    GeographyResource,
    ParseGeographies,
    get_features,
    get_mesh,
)
from .models import GeographyData, Mesh, PreparedFeature, ProjectionConfig
from .path import GeoPath, make_path
from .preparation import prepare_features, prepare_mesh
from .projection import ProjectionFn, make_projection
from .validation import validate_number, validate_projection_config

_LOGGER = logging.getLogger("geomap.state")

_CURRENT_MAP: ContextVar[MapState | None] = ContextVar("geomap_map_state", default=None)


class MapState:
    """Viewport size and projection inputs, with derived projection and path.

    The projection is rebuilt only when its inputs change, and the path only when
    the projection does. Subscribers are called after every effective change.
    """

    def __init__(
        self,
        width: float = 800,
        height: float = 600,
        projection: str | ProjectionFn = "geoEqualEarth",
        projection_config: ProjectionConfig | Mapping[str, Any] | None = None,
    ) -> None:
        self._width = validate_number(width, 1.0)
        self._height = validate_number(height, 1.0)
        self._projection_input = projection
        self._projection_config = validate_projection_config(projection_config or {})
        self._projection_cache: tuple[tuple[Any, ...], ProjectionFn] | None = None
        self._path_cache: tuple[ProjectionFn, GeoPath] | None = None
        self._subscribers: list[Callable[[MapState], None]] = []

    @classmethod
    def from_config(cls, cfg: MapConfig) -> MapState:
        return cls(
            width=cfg.width,
            height=cfg.height,
            projection=cfg.projection,
            projection_config=cfg.projection_config,
        )

    @property
    def width(self) -> float:
        return self._width

    @property
    def height(self) -> float:
        return self._height

    @property
    def projection_config(self) -> ProjectionConfig:
        return self._projection_config

    @property
    def projection(self) -> ProjectionFn:
        key = (self._projection_input, self._projection_config, self._width, self._height)
        cached = self._projection_cache
        if cached is not None and cached[0] == key:
            return cached[1]
        built = make_projection(self._projection_input, self._projection_config, self._width, self._height)
        self._projection_cache = (key, built)
        _LOGGER.debug("Projection rebuilt for %sx%s", self._width, self._height)
        return built

    @property
    def path(self) -> GeoPath:
        projection = self.projection
        cached = self._path_cache
        if cached is not None and cached[0] is projection:
            return cached[1]
        path = make_path(projection)
        self._path_cache = (projection, path)
        return path

    def subscribe(self, callback: Callable[[MapState], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def set_size(self, width: float, height: float) -> None:
        self.update(width=width, height=height)

    def set_projection(self, projection: str | ProjectionFn) -> None:
        self.update(projection=projection)

    def set_projection_config(self, projection_config: ProjectionConfig | Mapping[str, Any] | None) -> None:
        self.update(projection_config=projection_config or {})

    def update(
        self,
        *,
        width: float | None = None,
        height: float | None = None,
        projection: str | ProjectionFn | None = None,
        projection_config: ProjectionConfig | Mapping[str, Any] | None = None,
    ) -> None:
        changed = False
        if width is not None:
            new_width = validate_number(width, 1.0)
            changed |= new_width != self._width
            self._width = new_width
        if height is not None:
            new_height = validate_number(height, 1.0)
            changed |= new_height != self._height
            self._height = new_height
        if projection is not None and projection != self._projection_input:
            changed = True
            self._projection_input = projection
        if projection_config is not None:
            new_config = validate_projection_config(projection_config)
            changed |= new_config != self._projection_config
            self._projection_config = new_config
        if changed:
            for callback in list(self._subscribers):
                callback(self)


@contextmanager
def map_provider(state: MapState | None = None, **kwargs: Any) -> Iterator[MapState]:
    """Scope a MapState so `use_map_context()` can reach it."""
    active = state if state is not None else MapState(**kwargs)
    token = _CURRENT_MAP.set(active)
    try:
        yield active
    finally:
        _CURRENT_MAP.reset(token)


def use_map_context() -> MapState:
    state = _CURRENT_MAP.get()
    if state is None:
        raise ContextError("use_map_context() must be called inside map_provider()")
    return state


class Geographies:
    """Prepared features and mesh paths for one geography source on a map.

    Preparation is cached on the identity of the loaded data and the map's path
    generator, so it only reruns when either changes.
    """

    def __init__(
        self,
        geography: Geography,
        state: MapState | None = None,
        parse_geographies: ParseGeographies | None = None,
        on_error: Callable[[GeographyError], None] | None = None,
        fetcher: GeographyFetcher | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._state = state if state is not None else use_map_context()
        self._parse_geographies = parse_geographies
        self._resource = GeographyResource(fetcher=fetcher, executor=executor, on_error=on_error)
        self._extracted: tuple[Any, list[Any], Mesh | None] | None = None
        self._cache: tuple[Any, GeoPath, GeographyData] | None = None
        self._resource.load(geography)

    @property
    def resource(self) -> GeographyResource:
        return self._resource

    @property
    def loading(self) -> bool:
        return self._resource.loading

    @property
    def error(self) -> GeographyError | None:
        return self._resource.error

    def set_geography(self, geography: Geography) -> None:
        self._resource.load(geography)

    @property
    def data(self) -> GeographyData:
        loaded = self._resource.data
        path = self._state.path
        cached = self._cache
        if cached is not None and cached[0] is loaded and cached[1] is path:
            return cached[2]

        if loaded is None:
            result = GeographyData()
        else:
            features, mesh = self._extract(loaded)
            prepared = prepare_features(features, path)
            prepared_mesh = prepare_mesh(
                mesh.outline if mesh else None,
                mesh.borders if mesh else None,
                path,
            )
            invert = getattr(self._state.projection, "invert", None)
            center = invert((self._state.width / 2, self._state.height / 2)) if invert else None
            result = GeographyData(
                geographies=tuple(prepared),
                outline=prepared_mesh.outline or "",
                borders=prepared_mesh.borders or "",
                center=center,
            )
        self._cache = (loaded, path, result)
        return result

    def _extract(self, loaded: Any) -> tuple[list[Any], Mesh | None]:
        extracted = self._extracted
        if extracted is None or extracted[0] is not loaded:
            extracted = (loaded, get_features(loaded, self._parse_geographies), get_mesh(loaded))
            self._extracted = extracted
        return extracted[1], extracted[2]

    @property
    def geographies(self) -> tuple[PreparedFeature, ...]:
        return self.data.geographies

    @property
    def outline(self) -> str:
        return self.data.outline

    @property
    def borders(self) -> str:
        return self.data.borders

    def close(self) -> None:
        self._resource.close()
