"""Pan/zoom gesture primitive: transforms, gesture events, and the zoom behavior.

`ZoomBehavior` turns wheel, pointer, pinch, and double-click events dispatched on a
`GestureSurface` into a stream of start/zoom/end events carrying a `ZoomTransform`.
Every transform it produces is clamped to the scale extent and translate extent.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .util import format_number

_LOGGER = logging.getLogger("geomap.zoom")

Point = tuple[float, float]
Extent = tuple[Point, Point]

_INF = math.inf


@dataclass(frozen=True, slots=True)
class ZoomTransform:
    """Scale `k` followed by translation `(x, y)`: screen = world * k + (x, y)."""

    k: float = 1.0
    x: float = 0.0
    y: float = 0.0

    def apply(self, point: Sequence[float]) -> Point:
        return (point[0] * self.k + self.x, point[1] * self.k + self.y)

    def apply_x(self, x: float) -> float:
        return x * self.k + self.x

    def apply_y(self, y: float) -> float:
        return y * self.k + self.y

    def invert(self, point: Sequence[float]) -> Point:
        return ((point[0] - self.x) / self.k, (point[1] - self.y) / self.k)

    def invert_x(self, x: float) -> float:
        return (x - self.x) / self.k

    def invert_y(self, y: float) -> float:
        return (y - self.y) / self.k

    def scale(self, k: float) -> ZoomTransform:
        return self if k == 1 else ZoomTransform(self.k * k, self.x, self.y)

    def translate(self, x: float, y: float) -> ZoomTransform:
        if x == 0 and y == 0:
            return self
        return ZoomTransform(self.k, self.x + self.k * x, self.y + self.k * y)

    def to_state(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "k": self.k}

    def __str__(self) -> str:
        return f"translate({format_number(self.x)},{format_number(self.y)}) scale({format_number(self.k)})"


ZOOM_IDENTITY = ZoomTransform()


@dataclass(frozen=True, slots=True)
class WheelEvent:
    x: float
    y: float
    delta_y: float
    delta_mode: int = 0
    ctrl_key: bool = False
    shift_key: bool = False
    button: int = 0
    type: str = "wheel"


@dataclass(frozen=True, slots=True)
class PointerEvent:
    type: str
    x: float
    y: float
    pointer_id: int = 1
    button: int = 0
    pointer_type: str = "mouse"
    ctrl_key: bool = False
    shift_key: bool = False


@dataclass(frozen=True, slots=True)
class DoubleClickEvent:
    x: float
    y: float
    ctrl_key: bool = False
    shift_key: bool = False
    button: int = 0
    type: str = "dblclick"


GestureEvent = Any


@dataclass(frozen=True, slots=True)
class ZoomEvent:
    """What zoom listeners receive: the phase, the transform, and the triggering input."""

    type: str
    transform: ZoomTransform
    source_event: GestureEvent | None = None


def default_filter(event: GestureEvent) -> bool:
    """Reject ctrl-modified input and non-primary buttons."""
    return not getattr(event, "ctrl_key", False) and not getattr(event, "button", 0)


def default_wheel_delta(event: WheelEvent) -> float:
    factor = 0.05 if event.delta_mode == 1 else 1.0 if event.delta_mode else 0.002
    return -event.delta_y * factor * (10 if event.ctrl_key else 1)


def _split_typename(typename: str) -> tuple[str, str]:
    kind, _, name = typename.partition(".")
    return kind, name


class GestureSurface:
    """Event target standing in for the host element; it owns the current transform."""

    def __init__(self, width: float = 800, height: float = 600) -> None:
        self.width = float(width)
        self.height = float(height)
        self.transform = ZOOM_IDENTITY
        self._listeners: dict[tuple[str, str], Callable[[GestureEvent], None]] = {}

    def on(self, typename: str, listener: Callable[[GestureEvent], None] | None) -> GestureSurface:
        key = _split_typename(typename)
        if listener is None:
            self._listeners.pop(key, None)
        else:
            self._listeners[key] = listener
        return self

    def off(self, typename: str) -> GestureSurface:
        """Remove listeners matching `type.name`; an empty part matches anything."""
        kind, name = _split_typename(typename)
        for key in list(self._listeners):
            if (not kind or key[0] == kind) and (not name or key[1] == name):
                del self._listeners[key]
        return self

    def listener_count(self, kind: str | None = None) -> int:
        return sum(1 for key in self._listeners if kind is None or key[0] == kind)

    def dispatch(self, event: GestureEvent) -> None:
        for key, listener in list(self._listeners.items()):
            if key[0] == event.type:
                listener(event)


@dataclass(slots=True)
class _Gesture:
    surface: GestureSurface
    source_event: GestureEvent | None = None
    mouse: tuple[Point, Point] | None = None
    touches: dict[int, list[Point]] = field(default_factory=dict)


class ZoomBehavior:
    """Gesture-to-transform state machine bound to one surface at a time."""

    def __init__(
        self,
        scale_extent: tuple[float, float] = (0.0, _INF),
        translate_extent: Extent = ((-_INF, -_INF), (_INF, _INF)),
        extent: Extent | None = None,
        filter: Callable[[GestureEvent], bool] = default_filter,
        wheel_delta: Callable[[WheelEvent], float] = default_wheel_delta,
    ) -> None:
        self.scale_extent = (float(scale_extent[0]), float(scale_extent[1]))
        self.translate_extent = translate_extent
        self.extent = extent
        self.filter = filter
        self.wheel_delta = wheel_delta
        self._listeners: dict[tuple[str, str], Callable[[ZoomEvent], None]] = {}
        self._surface: GestureSurface | None = None
        self._gesture: _Gesture | None = None

    def on(self, typename: str, listener: Callable[[ZoomEvent], None] | None) -> ZoomBehavior:
        key = _split_typename(typename)
        if key[0] not in ("start", "zoom", "end"):
            raise ValueError(f"Unknown zoom event type: {key[0]}")
        if listener is None:
            self._listeners.pop(key, None)
        else:
            self._listeners[key] = listener
        return self

    @property
    def surface(self) -> GestureSurface | None:
        return self._surface

    @property
    def gesture_active(self) -> bool:
        return self._gesture is not None

    def bind(self, surface: GestureSurface) -> None:
        if self._surface is not None:
            self.unbind()
        surface.on("wheel.zoom", self._wheeled)
        surface.on("pointerdown.zoom", self._pointer_down)
        surface.on("pointermove.zoom", self._pointer_moved)
        surface.on("pointerup.zoom", self._pointer_up)
        surface.on("pointercancel.zoom", self._pointer_up)
        surface.on("dblclick.zoom", self._double_clicked)
        self._surface = surface
        _LOGGER.debug(
            "Zoom bound (scale_extent=%s, translate_extent=%s)",
            self.scale_extent,
            self.translate_extent,
        )

    def unbind(self) -> None:
        """Detach from the surface. A gesture in progress is ended with an "end" event."""
        gesture = self._gesture
        if self._surface is not None:
            self._surface.off(".zoom")
        self._surface = None
        self._gesture = None
        if gesture is not None:
            self._emit("end", gesture)

    def transform(self, surface: GestureSurface, transform: ZoomTransform, source_event: GestureEvent | None = None) -> None:
        """Set the transform immediately, emitting start, zoom, and end."""
        target = self._constrain(self._scaled(transform, transform.k), self._extent(surface))
        gesture = _Gesture(surface=surface, source_event=source_event)
        self._emit("start", gesture)
        self._zoom(gesture, target)
        self._emit("end", gesture)

    def scale_by(self, surface: GestureSurface, k: float, point: Point | None = None) -> None:
        self.scale_to(surface, surface.transform.k * k, point)

    def scale_to(self, surface: GestureSurface, k: float, point: Point | None = None) -> None:
        extent = self._extent(surface)
        t0 = surface.transform
        p0 = point if point is not None else _centroid(extent)
        p1 = t0.invert(p0)
        self.transform(surface, self._translated(self._scaled(t0, k), p0, p1))

    def translate_by(self, surface: GestureSurface, x: float, y: float) -> None:
        self.transform(surface, surface.transform.translate(x, y))

    def _extent(self, surface: GestureSurface) -> Extent:
        if self.extent is not None:
            return self.extent
        return ((0.0, 0.0), (surface.width, surface.height))

    def _scaled(self, transform: ZoomTransform, k: float) -> ZoomTransform:
        low, high = self.scale_extent
        k = max(low, min(high, k))
        return transform if k == transform.k else ZoomTransform(k, transform.x, transform.y)

    @staticmethod
    def _translated(transform: ZoomTransform, p0: Point, p1: Point) -> ZoomTransform:
        x = p0[0] - p1[0] * transform.k
        y = p0[1] - p1[1] * transform.k
        if x == transform.x and y == transform.y:
            return transform
        return ZoomTransform(transform.k, x, y)

    def _constrain(self, transform: ZoomTransform, extent: Extent) -> ZoomTransform:
        (ex0, ey0), (ex1, ey1) = extent
        (tx0, ty0), (tx1, ty1) = self.translate_extent
        dx0 = transform.invert_x(ex0) - tx0
        dx1 = transform.invert_x(ex1) - tx1
        dy0 = transform.invert_y(ey0) - ty0
        dy1 = transform.invert_y(ey1) - ty1
        return transform.translate(
            (dx0 + dx1) / 2 if dx1 > dx0 else min(0.0, dx0) or max(0.0, dx1),
            (dy0 + dy1) / 2 if dy1 > dy0 else min(0.0, dy0) or max(0.0, dy1),
        )

    def _emit(self, kind: str, gesture: _Gesture) -> None:
        event = ZoomEvent(kind, gesture.surface.transform, gesture.source_event)
        for key, listener in list(self._listeners.items()):
            if key[0] == kind:
                listener(event)

    def _zoom(self, gesture: _Gesture, transform: ZoomTransform) -> None:
        gesture.surface.transform = transform
        self._emit("zoom", gesture)

    def _wheeled(self, event: WheelEvent) -> None:
        if self._gesture is not None or self._surface is None or not self.filter(event):
            return
        surface = self._surface
        t = surface.transform
        p0 = (event.x, event.y)
        k = max(self.scale_extent[0], min(self.scale_extent[1], t.k * 2 ** self.wheel_delta(event)))
        if k == t.k:
            return
        p1 = t.invert(p0)
        gesture = _Gesture(surface=surface, source_event=event)
        self._emit("start", gesture)
        self._zoom(gesture, self._constrain(self._translated(self._scaled(t, k), p0, p1), self._extent(surface)))
        self._emit("end", gesture)

    def _pointer_down(self, event: PointerEvent) -> None:
        if not self.filter(event) or self._surface is None:
            return
        surface = self._surface
        p = (event.x, event.y)
        started = self._gesture is None
        if started:
            self._gesture = _Gesture(surface=surface, source_event=event)
        gesture = self._gesture
        gesture.source_event = event
        if event.pointer_type == "touch":
            if len(gesture.touches) >= 2:
                return
            gesture.touches[event.pointer_id] = [p, surface.transform.invert(p)]
        elif gesture.mouse is None:
            gesture.mouse = (p, surface.transform.invert(p))
        if started:
            self._emit("start", gesture)

    def _pointer_moved(self, event: PointerEvent) -> None:
        gesture = self._gesture
        if gesture is None:
            return
        gesture.source_event = event
        surface = gesture.surface
        t = surface.transform
        p = (event.x, event.y)
        if event.pointer_type == "touch":
            if event.pointer_id not in gesture.touches:
                return
            gesture.touches[event.pointer_id][0] = p
            touches = list(gesture.touches.values())
            if len(touches) >= 2:
                (p0, l0), (p1, l1) = touches[0], touches[1]
                dp = (p1[0] - p0[0]) ** 2 + (p1[1] - p0[1]) ** 2
                dl = (l1[0] - l0[0]) ** 2 + (l1[1] - l0[1]) ** 2
                if dl > 0:
                    t = self._scaled(t, math.sqrt(dp / dl))
                anchor = ((p0[0] + p1[0]) / 2, (p0[1] + p1[1]) / 2)
                world = ((l0[0] + l1[0]) / 2, (l0[1] + l1[1]) / 2)
            else:
                anchor, world = touches[0][0], touches[0][1]
        else:
            if gesture.mouse is None:
                return
            anchor, world = p, gesture.mouse[1]
            gesture.mouse = (p, world)
        self._zoom(gesture, self._constrain(self._translated(t, anchor, world), self._extent(surface)))

    def _pointer_up(self, event: PointerEvent) -> None:
        gesture = self._gesture
        if gesture is None:
            return
        gesture.source_event = event
        if event.pointer_type == "touch":
            gesture.touches.pop(event.pointer_id, None)
            for touch in gesture.touches.values():
                touch[1] = gesture.surface.transform.invert(touch[0])
        else:
            gesture.mouse = None
        if gesture.mouse is None and not gesture.touches:
            self._gesture = None
            self._emit("end", gesture)

    def _double_clicked(self, event: DoubleClickEvent) -> None:
        if self._gesture is not None or self._surface is None or not self.filter(event):
            return
        surface = self._surface
        t0 = surface.transform
        p0 = (event.x, event.y)
        p1 = t0.invert(p0)
        k1 = t0.k * (0.5 if event.shift_key else 2.0)
        self.transform(surface, self._translated(self._scaled(t0, k1), p0, p1), source_event=event)


def _centroid(extent: Extent) -> Point:
    (x0, y0), (x1, y1) = extent
    return ((x0 + x1) / 2, (y0 + y1) / 2)
