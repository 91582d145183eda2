"""Typed configuration loader for `geomap.yaml`."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .errors import ConfigurationError, ValidationError
from .models import ProjectionConfig, ScaleExtent, TranslateExtent, create_translate_extent
from .validation import ValidationConfig, validate_projection_config, validate_security_config


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ConfigurationError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"Expected bool for '{field_name}'")
    return value


@dataclass(frozen=True, slots=True)
class MapConfig:
    width: int = 800
    height: int = 600
    projection: str = "geoEqualEarth"
    projection_config: ProjectionConfig = field(default_factory=ProjectionConfig)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MapConfig:
        width = _int(raw.get("width", 800), "map.width")
        height = _int(raw.get("height", 600), "map.height")
        if width <= 0 or height <= 0:
            raise ConfigurationError("map.width and map.height must be > 0")
        try:
            projection_config = validate_projection_config(
                _mapping(raw.get("projection_config"), "map.projection_config")
            )
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid map.projection_config: {exc.message}",
                cause=exc,
            ) from exc
        return cls(
            width=width,
            height=height,
            projection=_str(raw.get("projection", "geoEqualEarth"), "map.projection"),
            projection_config=projection_config,
        )


@dataclass(frozen=True, slots=True)
class ZoomConfig:
    min_zoom: float = 1.0
    max_zoom: float = 8.0
    translate_extent: TranslateExtent = field(default_factory=TranslateExtent.unbounded)

    @property
    def scale_extent(self) -> ScaleExtent:
        return ScaleExtent(self.min_zoom, self.max_zoom)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ZoomConfig:
        min_zoom = _float(raw.get("min_zoom", 1.0), "zoom.min_zoom")
        max_zoom = _float(raw.get("max_zoom", 8.0), "zoom.max_zoom")
        if min_zoom <= 0:
            raise ConfigurationError("zoom.min_zoom must be > 0")
        if min_zoom > max_zoom:
            raise ConfigurationError("zoom.min_zoom cannot be greater than zoom.max_zoom")

        extent_raw = raw.get("translate_extent")
        if extent_raw is None:
            extent = TranslateExtent.unbounded()
        else:
            if not isinstance(extent_raw, list) or len(extent_raw) != 2:
                raise ConfigurationError("zoom.translate_extent must be [[x0, y0], [x1, y1]]")
            corners: list[tuple[float, float]] = []
            for idx, corner in enumerate(extent_raw):
                if not isinstance(corner, list) or len(corner) != 2:
                    raise ConfigurationError(f"Invalid zoom.translate_extent[{idx}]")
                corners.append(
                    (
                        _float(corner[0], f"zoom.translate_extent[{idx}][0]"),
                        _float(corner[1], f"zoom.translate_extent[{idx}][1]"),
                    )
                )
            extent = create_translate_extent(corners[0], corners[1])
        return cls(min_zoom=min_zoom, max_zoom=max_zoom, translate_extent=extent)


@dataclass(frozen=True, slots=True)
class FetchConfig:
    timeout_s: float = 10.0
    user_agent: str = "geomap/0.1"
    max_retries: int = 0
    retry_backoff_s: float = 0.5
    max_response_bytes: int = 50 * 1024 * 1024
    allowed_content_types: tuple[str, ...] = (
        "application/json",
        "application/geo+json",
        "application/topo+json",
        "text/plain",
    )
    allowed_protocols: tuple[str, ...] = ("https", "http")
    allow_http_localhost: bool = True
    strict_https_only: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FetchConfig:
        max_retries = _int(raw.get("max_retries", 0), "fetch.max_retries")
        retry_backoff_s = _float(raw.get("retry_backoff_s", 0.5), "fetch.retry_backoff_s")
        if max_retries < 0:
            raise ConfigurationError("fetch.max_retries must be >= 0")
        if retry_backoff_s <= 0:
            raise ConfigurationError("fetch.retry_backoff_s must be > 0")

        security_keys = (
            "timeout_s",
            "max_response_bytes",
            "allowed_content_types",
            "allowed_protocols",
            "allow_http_localhost",
            "strict_https_only",
        )
        try:
            security = validate_security_config({key: raw[key] for key in security_keys if key in raw})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid fetch settings: {exc.message}", cause=exc) from exc

        defaults = cls()
        return cls(
            timeout_s=security.get("timeout_s", defaults.timeout_s),
            user_agent=_str(raw.get("user_agent", defaults.user_agent), "fetch.user_agent"),
            max_retries=max_retries,
            retry_backoff_s=retry_backoff_s,
            max_response_bytes=security.get("max_response_bytes", defaults.max_response_bytes),
            allowed_content_types=security.get("allowed_content_types", defaults.allowed_content_types),
            allowed_protocols=security.get("allowed_protocols", defaults.allowed_protocols),
            allow_http_localhost=security.get("allow_http_localhost", defaults.allow_http_localhost),
            strict_https_only=security.get("strict_https_only", defaults.strict_https_only),
        )


def _validation_config_from_mapping(raw: Mapping[str, Any]) -> ValidationConfig:
    defaults = ValidationConfig()
    return ValidationConfig(
        strict_mode=_bool(raw.get("strict_mode", defaults.strict_mode), "validation.strict_mode"),
        allow_unsafe_content=_bool(
            raw.get("allow_unsafe_content", defaults.allow_unsafe_content),
            "validation.allow_unsafe_content",
        ),
        max_string_length=_int(
            raw.get("max_string_length", defaults.max_string_length),
            "validation.max_string_length",
        ),
        max_array_length=_int(
            raw.get("max_array_length", defaults.max_array_length),
            "validation.max_array_length",
        ),
        max_object_depth=_int(
            raw.get("max_object_depth", defaults.max_object_depth),
            "validation.max_object_depth",
        ),
    )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path | None = None
    map: MapConfig = field(default_factory=MapConfig)
    zoom: ZoomConfig = field(default_factory=ZoomConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path | None = None) -> AppConfig:
        return cls(
            source_path=source_path.resolve() if source_path is not None else None,
            map=MapConfig.from_mapping(_mapping(raw.get("map"), "map")),
            zoom=ZoomConfig.from_mapping(_mapping(raw.get("zoom"), "zoom")),
            fetch=FetchConfig.from_mapping(_mapping(raw.get("fetch"), "fetch")),
            validation=_validation_config_from_mapping(_mapping(raw.get("validation"), "validation")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
