"""Geography loading: feature/mesh extraction and race-safe URL fetching."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from functools import partial
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

import requests

from .config import FetchConfig
from .errors import (
    ErrorKind,
    GeographyError,
    GeographyLoadError,
    GeographyParseError,
    SecurityError,
    create_geography_error,
)
from .models import Feature, Mesh, SRIConfig
from .topology import feature, mesh
from .util import integrity_digest
from .validation import validate_url

_RETRYABLE_HTTP_STATUS = {403, 429, 500, 502, 503, 504}
_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}

_LOGGER = logging.getLogger("geomap.geographies")

Geography = Any
ParseGeographies = Callable[[list[Feature]], list[Feature]]


def is_url(geography: Geography) -> bool:
    return isinstance(geography, str)


def _first_object(topology: Mapping[str, Any]) -> Mapping[str, Any] | None:
    objects = topology.get("objects") or {}
    if not objects:
        return None
    first_key = next(iter(objects))
    obj = objects.get(first_key)
    if len(objects) > 1:
        _LOGGER.debug(
            "Topology has %d objects; using only the first (%s)",
            len(objects),
            first_key,
        )
    return obj or None


def get_features(
    geography: Geography,
    parse_geographies: ParseGeographies | None = None,
) -> list[Feature]:
    """Extract the feature list from a Topology, FeatureCollection, or feature list.

    Only the first object of a Topology is read.
    """
    if isinstance(geography, list):
        features = geography
    elif isinstance(geography, Mapping) and geography.get("type") == "Topology":
        obj = _first_object(geography)
        if obj is None:
            return []
        collection = feature(geography, obj)
        features = list(collection.get("features") or []) if "features" in collection else []
    elif isinstance(geography, Mapping) and geography.get("type") == "FeatureCollection":
        features = list(geography.get("features") or [])
    else:
        return []
    return parse_geographies(features) if parse_geographies is not None else features


def get_mesh(geography: Geography) -> Mesh | None:
    """Outline and border meshes of a Topology's first object; None for other inputs."""
    if not isinstance(geography, Mapping) or geography.get("type") != "Topology":
        return None
    obj = _first_object(geography)
    if obj is None:
        return None
    try:
        outline = mesh(geography, obj, lambda a, b: a is b)
        borders = mesh(geography, obj, lambda a, b: a is not b)
    except (GeographyParseError, KeyError, TypeError, ValueError) as exc:
        _LOGGER.warning("Mesh extraction failed; drawing without outline/borders: %s", exc)
        return Mesh(outline=None, borders=None)
    return Mesh(outline=outline, borders=borders)


class GeographyFetcher:
    """Fetch geography JSON over HTTP with retries and transport-level safety checks."""

    def __init__(self, cfg: FetchConfig, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self._session = session if session is not None else requests.Session()
        self._session.headers.update({"User-Agent": cfg.user_agent})
        self._max_retries = max(int(cfg.max_retries), 0)
        self._retry_backoff_s = max(float(cfg.retry_backoff_s), 0.01)

    def fetch(self, url: str, sri: SRIConfig | None = None) -> Geography:
        checked = self._check_url(url)
        response = self._request_get(checked)
        try:
            body = response.content
            self._check_response(checked, response, body)
            if sri is not None:
                self._check_integrity(checked, body, sri)
            try:
                payload = response.json()
            except ValueError as exc:
                raise GeographyParseError(
                    f"Invalid JSON in geography response from {checked}",
                    geography=checked,
                    cause=exc,
                ) from exc
        finally:
            response.close()

        if isinstance(payload, list):
            return payload
        if not isinstance(payload, Mapping) or payload.get("type") not in ("Topology", "FeatureCollection"):
            raise GeographyParseError(
                "Geography JSON must be a Topology, FeatureCollection, or feature list",
                geography=checked,
                details={"type": payload.get("type") if isinstance(payload, Mapping) else type(payload).__name__},
            )
        _LOGGER.info("Loaded %s geography from %s (%d bytes)", payload["type"], checked, len(body))
        return payload

    def _check_url(self, url: str) -> str:
        checked = validate_url(url)
        parsed = urlparse(checked)
        scheme = parsed.scheme.casefold()
        is_local = (parsed.hostname or "").casefold() in _LOCAL_HOSTS
        if scheme not in self.cfg.allowed_protocols:
            raise SecurityError(f"Protocol not allowed: {scheme}", operation="fetch")
        if scheme == "http" and self.cfg.strict_https_only and not (self.cfg.allow_http_localhost and is_local):
            raise SecurityError(f"HTTPS is required for {checked}", operation="fetch")
        return checked

    def _request_get(self, url: str) -> requests.Response:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                response = self._session.get(url, timeout=self.cfg.timeout_s)
            except requests.RequestException as exc:
                raise GeographyLoadError(
                    f"Failed to fetch geography: {exc}",
                    geography=url,
                    cause=exc,
                ) from exc
            if response.ok:
                return response
            if response.status_code not in _RETRYABLE_HTTP_STATUS or attempt >= self._max_retries:
                response.close()
                raise GeographyLoadError(
                    f"Failed to fetch geography: {response.reason}",
                    geography=url,
                    details={"status": response.status_code},
                )
            delay_s = min(self._retry_backoff_s * (2**attempt), 30.0)
            _LOGGER.warning(
                "Retryable response %s for %s; retrying in %.1fs (%d/%d)",
                response.status_code,
                url,
                delay_s,
                attempt + 1,
                self._max_retries,
            )
            response.close()
            time.sleep(delay_s)
        raise RuntimeError("Unreachable retry loop in geography fetcher")

    def _check_response(self, url: str, response: requests.Response, body: bytes) -> None:
        if len(body) > self.cfg.max_response_bytes:
            raise SecurityError(
                f"Geography response too large: {len(body)} bytes (max: {self.cfg.max_response_bytes})",
                operation="fetch",
            )
        content_type = (response.headers.get("Content-Type") or "").split(";")[0].strip().casefold()
        if content_type and content_type not in self.cfg.allowed_content_types:
            raise SecurityError(f"Content type not allowed: {content_type}", operation="fetch")

    def _check_integrity(self, url: str, body: bytes, sri: SRIConfig) -> None:
        actual = integrity_digest(body, sri.algorithm)
        if actual == sri.hash:
            return
        if sri.enforce_integrity:
            raise SecurityError(f"Integrity check failed for {url}", operation="integrity")
        _LOGGER.warning("Integrity mismatch for %s (expected %s, got %s)", url, sri.hash, actual)


class ResourceState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class GeographyResource:
    """Holds the active geography: a pre-parsed object, or the result of fetching a URL.

    Each distinct URL is fetched once. When the source changes while a fetch is in
    flight, the stale result is discarded when it lands (last URL wins).

    Fetches complete on the executor's worker thread, so `on_error` and subscriber
    callbacks for a URL load run there, not on the thread that called `load`.
    Callers with a single-threaded event loop should hand them back to it (or pass
    an executor that runs inline). Pre-parsed data notifies on the calling thread.
    """

    def __init__(
        self,
        fetcher: GeographyFetcher | None = None,
        executor: Executor | None = None,
        on_error: Callable[[GeographyError], None] | None = None,
        sri: SRIConfig | None = None,
    ) -> None:
        self._fetcher = fetcher if fetcher is not None else GeographyFetcher(FetchConfig())
        self._owns_executor = executor is None
        self._executor = executor
        self._on_error = on_error
        self._sri = sri
        self._lock = threading.Lock()
        self._generation = 0
        self._source: Geography = None
        self._state = ResourceState.RESOLVED
        self._data: Geography = None
        self._error: GeographyError | None = None
        self._settled = threading.Event()
        self._settled.set()
        self._subscribers: list[Callable[[GeographyResource], None]] = []

    @property
    def state(self) -> ResourceState:
        return self._state

    @property
    def data(self) -> Geography:
        return self._data

    @property
    def error(self) -> GeographyError | None:
        return self._error

    @property
    def loading(self) -> bool:
        return self._state is ResourceState.PENDING

    @property
    def source(self) -> Geography:
        return self._source

    def subscribe(self, callback: Callable[[GeographyResource], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def load(self, geography: Geography) -> None:
        with self._lock:
            if geography is self._source or (is_url(geography) and geography == self._source):
                return
            self._generation += 1
            generation = self._generation
            self._source = geography
            self._error = None
            if is_url(geography):
                self._state = ResourceState.PENDING
                self._data = None
                self._settled.clear()
            else:
                self._state = ResourceState.RESOLVED
                self._data = geography
                self._settled.set()

        self._notify()
        if is_url(geography):
            _LOGGER.debug("Fetching geography %s (generation %d)", geography, generation)
            future = self._get_executor().submit(self._fetcher.fetch, geography, self._sri)
            future.add_done_callback(partial(self._complete, generation, geography))

    def wait(self, timeout: float | None = None) -> Geography:
        """Block until the current fetch settles; returns the data (None when failed)."""
        self._settled.wait(timeout)
        return self._data

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="geomap-fetch")
        return self._executor

    def _complete(self, generation: int, url: str, future: Future[Any]) -> None:
        error: GeographyError | None = None
        data: Geography = None
        try:
            data = future.result()
        except GeographyError as exc:
            error = exc
        except Exception as exc:
            error = create_geography_error(
                ErrorKind.GEOGRAPHY_LOAD_ERROR,
                f"Failed to fetch geography: {exc}",
                geography=url,
                cause=exc,
            )

        with self._lock:
            if generation != self._generation:
                _LOGGER.debug("Discarding stale geography result for %s", url)
                return
            if error is None:
                self._state = ResourceState.RESOLVED
                self._data = data
            else:
                self._state = ResourceState.FAILED
                self._error = error
            self._settled.set()

        if error is not None:
            _LOGGER.error("Geography load failed for %s: %s", url, error.message)
            if self._on_error is not None:
                self._on_error(error)
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)
