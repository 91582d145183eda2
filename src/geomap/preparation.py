"""Turn features and mesh geometries into ready-to-draw SVG paths."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence

from .models import Feature, Geometry, PreparedFeature, PreparedMesh

_LOGGER = logging.getLogger("geomap.preparation")

PathFn = Callable[[Mapping[str, Any]], "str | None"]


def feature_key(index: int) -> str:
    return f"geo-{index}"


def prepare_features(features: Sequence[Feature] | None, path: PathFn) -> list[PreparedFeature]:
    """Project each feature through `path`; features with no drawable path are dropped."""
    if not features:
        return []

    prepared: list[PreparedFeature] = []
    dropped = 0
    for idx, feature in enumerate(features):
        svg_path = path(feature)
        if not svg_path:
            dropped += 1
            continue
        prepared.append(PreparedFeature(key=feature_key(idx), feature=feature, svg_path=svg_path))
    if dropped:
        _LOGGER.debug("Dropped %d of %d features with empty paths", dropped, len(features))
    return prepared


def prepare_mesh(outline: Geometry | None, borders: Geometry | None, path: PathFn) -> PreparedMesh:
    outline_path = path(outline) if outline else None
    borders_path = path(borders) if borders else None
    return PreparedMesh(outline=outline_path or None, borders=borders_path or None)
