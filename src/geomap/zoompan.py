"""Zoom/pan controller reconciling user gestures with programmatic camera moves.

Gesture input flows through a bound `ZoomBehavior`; programmatic `set_view`
calls set the transform directly. An explicit interaction state keeps the two
apart so a programmatic move is never reported back as a user move.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Sequence

from .coords import get_coords
from .errors import ConfigurationError
from .models import (
    Position,
    ScaleExtent,
    TranslateExtent,
    ZoomPanContext,
    create_coordinates,
    create_scale_extent,
)
from .state import MapState, use_map_context
from .util import format_number
from .validation import validate_coordinates, validate_number
from .zoom import GestureEvent, GestureSurface, ZoomBehavior, ZoomEvent, ZoomTransform, ZOOM_IDENTITY, default_filter

_LOGGER = logging.getLogger("geomap.zoompan")

MoveCallback = Callable[[Position, Any], None]


class InteractionState(str, Enum):
    IDLE = "idle"
    GESTURE_ACTIVE = "gesture_active"
    PROGRAMMATIC_MOVE = "programmatic_move"


_ALLOWED_TRANSITIONS: dict[InteractionState, frozenset[InteractionState]] = {
    InteractionState.IDLE: frozenset({InteractionState.GESTURE_ACTIVE, InteractionState.PROGRAMMATIC_MOVE}),
    InteractionState.GESTURE_ACTIVE: frozenset({InteractionState.IDLE}),
    InteractionState.PROGRAMMATIC_MOVE: frozenset({InteractionState.IDLE}),
}


class ZoomPanController:
    """Owns the zoom binding for one map and reports moves in lon/lat."""

    def __init__(
        self,
        state: MapState | None = None,
        surface: GestureSurface | None = None,
        center: Sequence[float] = (0.0, 0.0),
        zoom: float = 1.0,
        min_zoom: float = 1.0,
        max_zoom: float = 8.0,
        scale_extent: ScaleExtent | Sequence[float] | None = None,
        translate_extent: TranslateExtent | None = None,
        filter_zoom_event: Callable[[GestureEvent], bool] | None = None,
        on_move_start: MoveCallback | None = None,
        on_move: MoveCallback | None = None,
        on_move_end: MoveCallback | None = None,
        enable_zoom: bool = True,
        enable_pan: bool = True,
    ) -> None:
        self._state = state if state is not None else use_map_context()
        self._surface = surface if surface is not None else GestureSurface(self._state.width, self._state.height)
        if scale_extent is None:
            scale_extent = (min_zoom, max_zoom)
        self._scale_extent = self._check_scale_extent(scale_extent)
        self._translate_extent = translate_extent if translate_extent is not None else TranslateExtent.unbounded()
        self.filter_zoom_event = filter_zoom_event
        self.on_move_start = on_move_start
        self.on_move = on_move
        self.on_move_end = on_move_end
        self.enable_zoom = enable_zoom
        self.enable_pan = enable_pan

        self._interaction = InteractionState.IDLE
        self._behavior: ZoomBehavior | None = None
        self._binding_key: tuple[Any, ...] | None = None
        self._transform = self._surface.transform
        self._requested_view = (validate_coordinates(center), validate_number(zoom, 0.0))
        self._applied_view: tuple[Any, float] | None = None
        self._pending_view = False
        self._size = (self._state.width, self._state.height)
        self._closed = False

        self._bind()
        self.set_view(*self._requested_view)
        self._unsubscribe = self._state.subscribe(self._on_map_change)

    @property
    def interaction_state(self) -> InteractionState:
        return self._interaction

    @property
    def surface(self) -> GestureSurface:
        return self._surface

    @property
    def behavior(self) -> ZoomBehavior | None:
        return self._behavior

    @property
    def transform(self) -> ZoomTransform:
        return self._transform

    @property
    def scale_extent(self) -> ScaleExtent:
        return self._scale_extent

    @property
    def translate_extent(self) -> TranslateExtent:
        return self._translate_extent

    @property
    def transform_string(self) -> str:
        t = self._transform
        return f"translate({format_number(t.x)} {format_number(t.y)}) scale({format_number(t.k)})"

    @property
    def position(self) -> Position | None:
        """Geographic center of the viewport and current zoom, when the center is invertible."""
        return self._position(self._transform)

    def zoom_pan_context(self) -> ZoomPanContext:
        t = self._transform
        return ZoomPanContext(x=t.x, y=t.y, k=t.k, transform_string=self.transform_string)

    def set_scale_extent(self, scale_extent: ScaleExtent | Sequence[float]) -> None:
        self._scale_extent = self._check_scale_extent(scale_extent)
        self._bind()
        self._reconstrain()

    def set_translate_extent(self, translate_extent: TranslateExtent | None) -> None:
        self._translate_extent = translate_extent if translate_extent is not None else TranslateExtent.unbounded()
        self._bind()
        self._reconstrain()

    def set_view(self, center: Sequence[float], zoom: float, *, force: bool = False) -> None:
        """Move the camera to `center` at `zoom` instantly, without firing move callbacks."""
        coords = validate_coordinates(center)
        k = validate_number(zoom, 0.0)
        self._requested_view = (coords, k)
        if not force and self._applied_view == (coords, k):
            return
        if self._interaction is InteractionState.GESTURE_ACTIVE:
            self._pending_view = True
            _LOGGER.debug("Deferring view change to %s@%s until the gesture ends", tuple(coords), k)
            return

        if self._behavior is None:
            self._pending_view = True
            _LOGGER.debug("Deferring view change to %s@%s until zoom is bound", tuple(coords), k)
            return
        projected = self._state.projection(coords)
        if projected is None:
            _LOGGER.warning("Cannot move view to %s: center is not projectable", tuple(coords))
            return

        low, high = self._scale_extent
        k = max(low, min(high, k))
        x, y = projected
        target = ZOOM_IDENTITY.translate(
            self._state.width / 2 - x * k,
            self._state.height / 2 - y * k,
        ).scale(k)

        self._pending_view = False
        self._apply(target)
        self._applied_view = self._requested_view

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        behavior, self._behavior = self._behavior, None
        if behavior is not None:
            behavior.unbind()
        self._binding_key = None

    def _apply(self, target: ZoomTransform) -> None:
        self._transition(InteractionState.PROGRAMMATIC_MOVE)
        try:
            self._behavior.transform(self._surface, target)
        finally:
            if self._interaction is InteractionState.PROGRAMMATIC_MOVE:
                self._transition(InteractionState.IDLE)

    def _reconstrain(self) -> None:
        """Clamp the current transform to the current extents after a re-bind."""
        if self._pending_view:
            self.set_view(*self._requested_view, force=True)
        elif self._behavior is not None and self._interaction is InteractionState.IDLE:
            t = self._surface.transform
            low, high = self._scale_extent
            k = max(low, min(high, t.k))
            cx, cy = self._state.width / 2, self._state.height / 2
            wx, wy = t.invert((cx, cy))
            self._apply(ZoomTransform(k, cx - wx * k, cy - wy * k))

    def _check_scale_extent(self, scale_extent: Sequence[float]) -> ScaleExtent:
        low = validate_number(scale_extent[0], 0.0)
        high = validate_number(scale_extent[1], 0.0)
        if low <= 0 or low > high:
            raise ConfigurationError(
                f"Invalid scale extent: ({low}, {high})",
                details={"scale_extent": [low, high]},
            )
        return create_scale_extent(low, high)

    def _transition(self, target: InteractionState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self._interaction]:
            raise ConfigurationError(
                f"Illegal interaction transition: {self._interaction.value} -> {target.value}",
                details={"from": self._interaction.value, "to": target.value},
            )
        self._interaction = target

    def _bind(self) -> None:
        if self._closed:
            raise ConfigurationError("ZoomPanController is closed")
        width, height = self._state.width, self._state.height
        key = (self._scale_extent, self._translate_extent, width, height)
        if self._behavior is not None and key == self._binding_key:
            return
        previous, self._behavior = self._behavior, None
        if previous is not None:
            previous.unbind()

        self._surface.width = width
        self._surface.height = height
        behavior = ZoomBehavior(
            scale_extent=self._scale_extent,
            translate_extent=self._translate_extent,
            extent=((0.0, 0.0), (width, height)),
            filter=self._accepts,
        )
        behavior.on("start", self._handle_start)
        behavior.on("zoom", self._handle_zoom)
        behavior.on("end", self._handle_end)
        behavior.bind(self._surface)
        self._behavior = behavior
        self._binding_key = key

    def _accepts(self, event: GestureEvent) -> bool:
        kind = getattr(event, "type", "")
        if not self.enable_zoom and (kind in ("wheel", "dblclick") or getattr(event, "pointer_type", "") == "touch"):
            return False
        if not self.enable_pan and kind == "pointerdown" and getattr(event, "pointer_type", "mouse") != "touch":
            return False
        if self.filter_zoom_event is not None:
            return bool(self.filter_zoom_event(event))
        return default_filter(event)

    def _on_map_change(self, state: MapState) -> None:
        size = (state.width, state.height)
        if size != self._size:
            self._size = size
            self._bind()
        self.set_view(*self._requested_view, force=True)

    def _position(self, transform: ZoomTransform) -> Position | None:
        invert = getattr(self._state.projection, "invert", None)
        if invert is None:
            return None
        coords = get_coords(self._state.width, self._state.height, transform)
        inverted = invert(coords)
        if inverted is None:
            return None
        return Position(coordinates=create_coordinates(inverted[0], inverted[1]), zoom=transform.k)

    def _notify(self, callback: MoveCallback | None, event: ZoomEvent) -> None:
        if callback is None:
            return
        position = self._position(event.transform)
        if position is None:
            return
        callback(position, event.source_event if event.source_event is not None else event)

    def _handle_start(self, event: ZoomEvent) -> None:
        if self._interaction is InteractionState.PROGRAMMATIC_MOVE:
            return
        self._transition(InteractionState.GESTURE_ACTIVE)
        self._notify(self.on_move_start, event)

    def _handle_zoom(self, event: ZoomEvent) -> None:
        self._transform = event.transform
        if self._interaction is InteractionState.PROGRAMMATIC_MOVE:
            return
        self._notify(self.on_move, event)

    def _handle_end(self, event: ZoomEvent) -> None:
        self._transform = event.transform
        if self._interaction is InteractionState.PROGRAMMATIC_MOVE:
            self._transition(InteractionState.IDLE)
            return
        self._transition(InteractionState.IDLE)
        self._notify(self.on_move_end, event)
        if self._pending_view:
            self._pending_view = False
            self.set_view(*self._requested_view, force=True)
