"""Shared fixtures: tiny topologies, feature collections, and an inline executor."""

from __future__ import annotations

import copy
from concurrent.futures import Executor, Future
from typing import Any, Callable

import pytest

from geomap.validation import configure_validation


# Two unit squares side by side sharing the edge x=1. Arc 0 is shared,
# arcs 1 and 2 are the exterior of A and B.
_TWO_SQUARES = {
    "type": "Topology",
    "arcs": [
        [[1, 0], [1, 1]],
        [[1, 1], [0, 1], [0, 0], [1, 0]],
        [[1, 0], [2, 0], [2, 1], [1, 1]],
    ],
    "objects": {
        "countries": {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Polygon", "arcs": [[0, 1]], "id": "A", "properties": {"name": "Alpha"}},
                {"type": "Polygon", "arcs": [[2, -1]], "id": "B", "properties": {"name": "Beta"}},
            ],
        },
        "land": {
            "type": "GeometryCollection",
            "geometries": [{"type": "Polygon", "arcs": [[1, 2]]}],
        },
    },
}

_FEATURE_COLLECTION = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "id": "sq",
            "properties": {"name": "Square"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]],
            },
        },
        {
            "type": "Feature",
            "id": "pt",
            "properties": {"name": "Point"},
            "geometry": {"type": "Point", "coordinates": [5, 5]},
        },
    ],
}


@pytest.fixture
def two_squares_topology() -> dict[str, Any]:
    return copy.deepcopy(_TWO_SQUARES)


@pytest.fixture
def feature_collection() -> dict[str, Any]:
    return copy.deepcopy(_FEATURE_COLLECTION)


@pytest.fixture(autouse=True)
def reset_validation_config():
    configure_validation()
    yield
    configure_validation()


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class DeferredExecutor(Executor):
    """Queues submitted work until `run_next()` is called."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, Callable[[], Any]]] = []

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        self.pending.append((future, lambda: fn(*args, **kwargs)))
        return future

    def run(self, index: int) -> None:
        future, work = self.pending.pop(index)
        try:
            future.set_result(work())
        except Exception as exc:
            future.set_exception(exc)


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def deferred_executor() -> DeferredExecutor:
    return DeferredExecutor()
