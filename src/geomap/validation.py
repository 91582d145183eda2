"""Sanitization and validation for inputs destined for rendering or fetching."""

from __future__ import annotations

import inspect
import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Sequence, TypeVar
from urllib.parse import urlparse

from .errors import SecurityError, ValidationError
from .models import (
    Coordinates,
    ProjectionConfig,
    SRIConfig,
    create_coordinates,
    create_parallels,
    create_rotation_angles,
)

T = TypeVar("T")

_LOGGER = logging.getLogger("geomap.validation")

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITY_RE = re.compile(r"&[^;]+;")
_INLINE_PROTOCOL_RE = re.compile(r"javascript:|data:|vbscript:", re.IGNORECASE)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_CLASS_NAME_RE = re.compile(r"[^a-zA-Z0-9\-_\s]")

_DANGEROUS_PROTOCOLS = ("javascript", "data", "vbscript", "file")
_SRI_ALGORITHMS = ("sha256", "sha384", "sha512")
_DANGEROUS_STYLE_TOKENS = ("javascript:", "expression(", "url(", "@import")
_DANGEROUS_HANDLER_PATTERNS = (
    "eval(",
    "exec(",
    "compile(",
    "__import__",
    "os.system",
    "subprocess",
    "globals()",
    "setattr(",
)
_ALLOWED_STYLE_PROPERTIES = frozenset(
    {
        "fill",
        "stroke",
        "strokeWidth",
        "strokeDasharray",
        "strokeLinecap",
        "strokeLinejoin",
        "opacity",
        "fillOpacity",
        "strokeOpacity",
        "transform",
        "cursor",
        "pointerEvents",
        "transition",
        "fontSize",
        "fontFamily",
        "fontWeight",
        "textAnchor",
        "alignmentBaseline",
        "dominantBaseline",
    }
)


@dataclass(frozen=True, slots=True)
class ValidationConfig:
    strict_mode: bool = True
    allow_unsafe_content: bool = False
    max_string_length: int = 10_000
    max_array_length: int = 1_000
    max_object_depth: int = 10


DEFAULT_VALIDATION_CONFIG = ValidationConfig()

_current_config = DEFAULT_VALIDATION_CONFIG


def configure_validation(**overrides: Any) -> ValidationConfig:
    """Replace the process-wide validation config (unspecified fields reset to defaults)."""
    global _current_config
    unknown = set(overrides) - set(ValidationConfig.__dataclass_fields__)
    if unknown:
        raise ValidationError(
            f"Unknown validation settings: {', '.join(sorted(unknown))}",
            field="validation",
            value=sorted(unknown),
        )
    _current_config = replace(DEFAULT_VALIDATION_CONFIG, **overrides)
    return _current_config


def get_validation_config() -> ValidationConfig:
    return _current_config


def sanitize_string(value: Any, allow_html: bool = False) -> str:
    if not isinstance(value, str):
        raise ValidationError(
            f"Expected string, got {type(value).__name__}",
            field="string",
            value=value,
        )
    max_len = _current_config.max_string_length
    if len(value) > max_len:
        raise ValidationError(
            f"String too long: {len(value)} characters (max: {max_len})",
            field="string",
            value=len(value),
        )

    sanitized = value
    if not allow_html:
        sanitized = _TAG_RE.sub("", sanitized)
        sanitized = _ENTITY_RE.sub("", sanitized)
        sanitized = _INLINE_PROTOCOL_RE.sub("", sanitized)
    return _CONTROL_CHARS_RE.sub("", sanitized)


def validate_url(value: Any) -> str:
    sanitized = sanitize_string(value)
    parsed = urlparse(sanitized)
    scheme = parsed.scheme.casefold()
    if scheme in _DANGEROUS_PROTOCOLS:
        raise SecurityError(f"Dangerous protocol detected: {scheme}:", operation="validate_url")
    if not scheme or not parsed.netloc:
        raise ValidationError(f"Invalid URL format: {sanitized}", field="url", value=sanitized)

    hostname = parsed.hostname or ""
    if ".." in hostname or "%" in parsed.netloc:
        raise SecurityError(f"Invalid hostname: {parsed.netloc}", operation="validate_url")
    return parsed.geturl()


def validate_number(
    value: Any,
    min_value: float = -math.inf,
    max_value: float = math.inf,
) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            f"Expected number, got {type(value).__name__}",
            field="number",
            value=value,
        )
    if not math.isfinite(value):
        raise ValidationError("Number must be finite", field="number", value=value)
    if value < min_value or value > max_value:
        raise ValidationError(
            f"Number {value} is outside allowed range [{min_value}, {max_value}]",
            field="number",
            value=value,
        )
    return float(value)


def validate_coordinates(value: Any) -> Coordinates:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValidationError(
            "Coordinates must be a sequence of exactly 2 numbers",
            field="coordinates",
            value=value,
        )
    lon = validate_number(value[0], -180.0, 180.0)
    lat = validate_number(value[1], -90.0, 90.0)
    return create_coordinates(lon, lat)


def validate_array(
    value: Any,
    item_validator: Callable[[Any, int], T] | None = None,
) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"Expected array, got {type(value).__name__}",
            field="array",
            value=value,
        )
    max_len = _current_config.max_array_length
    if len(value) > max_len:
        raise ValidationError(
            f"Array too long: {len(value)} items (max: {max_len})",
            field="array",
            value=len(value),
        )
    if item_validator is None:
        return list(value)

    out: list[Any] = []
    for idx, item in enumerate(value):
        try:
            out.append(item_validator(item, idx))
        except ValidationError as exc:
            raise ValidationError(
                f"Invalid array item at index {idx}: {exc.message}",
                field=f"array[{idx}]",
                value=item,
                cause=exc,
            ) from exc
    return out


def validate_object(value: Any, depth: int = 0) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(
            f"Expected object, got {type(value).__name__}",
            field="object",
            value=value,
        )
    max_depth = _current_config.max_object_depth
    if depth > max_depth:
        raise ValidationError(
            f"Object nesting too deep: {depth} levels (max: {max_depth})",
            field="object",
            value=depth,
        )

    validated: dict[str, Any] = {}
    for key, item in value.items():
        clean_key = sanitize_string(key)
        if isinstance(item, Mapping):
            validated[clean_key] = validate_object(item, depth + 1)
        else:
            validated[clean_key] = item
    return validated


def validate_projection_config(value: Any) -> ProjectionConfig:
    """Validate a projection config mapping; unusable rotate/parallels shapes are ignored."""
    if isinstance(value, ProjectionConfig):
        value = value.to_dict()
    raw = validate_object(value)

    center = None
    if raw.get("center") is not None:
        center = validate_coordinates(raw["center"])

    rotate = None
    rotate_raw = raw.get("rotate")
    if isinstance(rotate_raw, (list, tuple)):
        angles = validate_array(rotate_raw, lambda item, _idx: validate_number(item, -360.0, 360.0))
        if len(angles) in (2, 3):
            rotate = create_rotation_angles(*angles)

    scale = None
    if raw.get("scale") is not None:
        scale = validate_number(raw["scale"], 0.1, 10_000.0)

    parallels = None
    parallels_raw = raw.get("parallels")
    if isinstance(parallels_raw, (list, tuple)):
        values = validate_array(parallels_raw, lambda item, _idx: validate_number(item, -90.0, 90.0))
        if len(values) == 2:
            parallels = create_parallels(values[0], values[1])

    return ProjectionConfig(center=center, rotate=rotate, scale=scale, parallels=parallels)


def sanitize_svg(svg_content: str) -> str:
    if _current_config.allow_unsafe_content:
        return svg_content
    sanitized = svg_content
    for pattern in (
        r"<script[^>]*>.*?</script>",
        r"<iframe[^>]*>.*?</iframe>",
        r"<object[^>]*>.*?</object>",
        r"<embed[^>]*>",
    ):
        sanitized = re.sub(pattern, "", sanitized, flags=re.IGNORECASE | re.DOTALL)
    sanitized = re.sub(r"\s*on\w+\s*=\s*([\"'])[^\"']*\1", "", sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r"on\w+\s*=", "", sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r"javascript:|vbscript:", "", sanitized, flags=re.IGNORECASE)
    return re.sub(r"data:(?!image/)", "", sanitized, flags=re.IGNORECASE)


def validate_security_config(value: Any) -> dict[str, Any]:
    """Validate fetch security settings (timeouts, size limits, protocols)."""
    raw = validate_object(value)
    config: dict[str, Any] = {}

    if raw.get("timeout_s") is not None:
        config["timeout_s"] = validate_number(raw["timeout_s"], 1.0, 60.0)
    if raw.get("max_response_bytes") is not None:
        config["max_response_bytes"] = int(
            validate_number(raw["max_response_bytes"], 1024, 100 * 1024 * 1024)
        )
    if raw.get("allowed_content_types") is not None:
        config["allowed_content_types"] = tuple(
            validate_array(raw["allowed_content_types"], lambda item, _idx: sanitize_string(item))
        )
    if raw.get("allowed_protocols") is not None:
        config["allowed_protocols"] = tuple(
            validate_array(raw["allowed_protocols"], lambda item, _idx: _validate_protocol(item))
        )
    for flag in ("allow_http_localhost", "strict_https_only"):
        if raw.get(flag) is not None:
            if not isinstance(raw[flag], bool):
                raise ValidationError(f"{flag} must be a boolean", field=flag, value=raw[flag])
            config[flag] = raw[flag]
    return config


def _validate_protocol(value: Any) -> str:
    protocol = sanitize_string(value).casefold().rstrip(":")
    if protocol not in ("https", "http"):
        raise ValidationError(f"Invalid protocol: {protocol}", field="protocol", value=value)
    return protocol


def validate_sri_config(value: Any) -> SRIConfig:
    raw = validate_object(value)
    missing = [key for key in ("algorithm", "hash", "enforce_integrity") if key not in raw]
    if missing:
        raise ValidationError(
            "SRI config must have algorithm, hash, and enforce_integrity properties",
            field="sri",
            value=missing,
        )
    algorithm = sanitize_string(raw["algorithm"])
    if algorithm not in _SRI_ALGORITHMS:
        raise ValidationError(f"Invalid SRI algorithm: {algorithm}", field="sri.algorithm", value=algorithm)
    digest = sanitize_string(raw["hash"])
    if not digest.startswith(f"{algorithm}-"):
        raise ValidationError(f"SRI hash must start with {algorithm}-", field="sri.hash", value=digest)
    if not isinstance(raw["enforce_integrity"], bool):
        raise ValidationError(
            "enforce_integrity must be a boolean",
            field="sri.enforce_integrity",
            value=raw["enforce_integrity"],
        )
    return SRIConfig(algorithm=algorithm, hash=digest, enforce_integrity=raw["enforce_integrity"])


def validate_class_name(value: Any) -> str:
    sanitized = sanitize_string(value)
    cleaned = _CLASS_NAME_RE.sub("", sanitized)
    return " ".join(cleaned.split())


def validate_style_object(value: Any) -> dict[str, str | float]:
    if value is None:
        return {}
    raw = validate_object(value)
    style: dict[str, str | float] = {}
    for key, item in raw.items():
        if key not in _ALLOWED_STYLE_PROPERTIES:
            continue
        if isinstance(item, str):
            clean = sanitize_string(item)
            token = next((tok for tok in _DANGEROUS_STYLE_TOKENS if tok in clean.casefold()), None)
            if token is not None:
                if _current_config.strict_mode:
                    raise SecurityError(
                        f"Style property '{key}' contains unsafe content: {token}",
                        operation="validate_style_object",
                    )
                _LOGGER.warning("Dropping unsafe style property %s (%s)", key, token)
                continue
            style[key] = clean
        elif isinstance(item, (int, float)) and not isinstance(item, bool) and math.isfinite(item):
            style[key] = item
    return style


def validate_event_handler(value: Any) -> Callable[..., Any] | None:
    if value is None:
        return None
    if not callable(value):
        raise ValidationError(
            f"Event handler must be callable, got {type(value).__name__}",
            field="handler",
            value=value,
        )
    try:
        source = inspect.getsource(value)
    except (OSError, TypeError):
        # builtins and dynamically created callables have no inspectable source
        return value
    for pattern in _DANGEROUS_HANDLER_PATTERNS:
        if pattern in source:
            raise SecurityError(
                f"Event handler contains potentially dangerous code: {pattern}",
                operation="validate_event_handler",
            )
    return value


def validate_component_props(value: Any, allowed_props: Sequence[str]) -> dict[str, Any]:
    raw = validate_object(value)
    allowed = set(allowed_props)
    props: dict[str, Any] = {}
    for key, item in raw.items():
        if key not in allowed:
            continue
        if key in ("class_name", "className", "class"):
            props[key] = validate_class_name(item)
        elif key == "style":
            props[key] = validate_style_object(item)
        elif key.startswith("on") and callable(item):
            props[key] = validate_event_handler(item)
        elif isinstance(item, str):
            props[key] = sanitize_string(item)
        elif isinstance(item, bool):
            props[key] = item
        elif isinstance(item, (int, float)) and math.isfinite(item):
            props[key] = item
        elif isinstance(item, (list, tuple)):
            props[key] = validate_array(item)
        elif isinstance(item, Mapping):
            props[key] = validate_object(item)
    return props
