"""Unit tests for the zoom transform and gesture behavior."""

from __future__ import annotations

import pytest

from geomap.zoom import (
    ZOOM_IDENTITY,
    DoubleClickEvent,
    GestureSurface,
    PointerEvent,
    WheelEvent,
    ZoomBehavior,
    ZoomTransform,
    default_filter,
    default_wheel_delta,
)


def _bound(**kwargs):
    surface = GestureSurface(800, 600)
    behavior = ZoomBehavior(**kwargs)
    events = []
    behavior.on("start", lambda e: events.append(("start", e.transform)))
    behavior.on("zoom", lambda e: events.append(("zoom", e.transform)))
    behavior.on("end", lambda e: events.append(("end", e.transform)))
    behavior.bind(surface)
    return surface, behavior, events


# ===========================================================================
# ZoomTransform
# ===========================================================================


class TestZoomTransform:
    def test_apply_and_invert(self):
        t = ZoomTransform(2, 10, 20)
        assert t.apply((5, 5)) == (20, 30)
        assert t.invert((20, 30)) == (5, 5)
        assert t.apply_x(1) == 12
        assert t.invert_y(24) == 2

    def test_translate_is_in_world_units(self):
        t = ZoomTransform(2, 0, 0).translate(10, 5)
        assert (t.k, t.x, t.y) == (2, 20, 10)

    def test_identity_shortcuts(self):
        assert ZOOM_IDENTITY.scale(1) is ZOOM_IDENTITY
        assert ZOOM_IDENTITY.translate(0, 0) is ZOOM_IDENTITY

    def test_compose(self):
        t = ZOOM_IDENTITY.translate(400, 300).scale(2)
        assert t == ZoomTransform(2, 400, 300)
        assert t.to_state() == {"x": 400, "y": 300, "k": 2}
        assert str(t) == "translate(400,300) scale(2)"
        assert str(ZoomTransform(1.5, -0.25, 0)) == "translate(-0.25,0) scale(1.5)"


# ===========================================================================
# Input helpers
# ===========================================================================


class TestInputHelpers:
    def test_default_filter(self):
        assert default_filter(WheelEvent(0, 0, 1))
        assert not default_filter(WheelEvent(0, 0, 1, ctrl_key=True))
        assert not default_filter(PointerEvent("pointerdown", 0, 0, button=2))

    @pytest.mark.parametrize("mode,expected", [(0, -0.2), (1, -5.0), (2, -100.0)])
    def test_wheel_delta(self, mode, expected):
        assert default_wheel_delta(WheelEvent(0, 0, 100, delta_mode=mode)) == pytest.approx(expected)

    def test_off_removes_namespace_only(self):
        surface = GestureSurface()
        seen = []
        surface.on("wheel.zoom", seen.append)
        surface.on("wheel.other", seen.append)
        surface.on("pointerdown.zoom", seen.append)
        surface.off(".zoom")
        assert surface.listener_count() == 1
        surface.dispatch(WheelEvent(0, 0, 1))
        assert len(seen) == 1


# ===========================================================================
# ZoomBehavior
# ===========================================================================


class TestZoomBehavior:
    def test_bind_and_unbind(self):
        surface, behavior, _ = _bound()
        assert surface.listener_count() == 6
        behavior.unbind()
        assert surface.listener_count() == 0
        assert behavior.surface is None

    def test_unbind_ends_active_gesture(self):
        surface, behavior, events = _bound()
        surface.dispatch(PointerEvent("pointerdown", 100, 100))
        assert behavior.gesture_active
        behavior.unbind()
        assert [kind for kind, _ in events] == ["start", "end"]
        assert not behavior.gesture_active

    def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            ZoomBehavior().on("drag", lambda e: None)

    def test_programmatic_transform_emits_phases(self):
        surface, behavior, events = _bound()
        behavior.transform(surface, ZoomTransform(2, -400, -300))
        assert [kind for kind, _ in events] == ["start", "zoom", "end"]
        assert surface.transform == ZoomTransform(2, -400, -300)

    def test_transform_is_clamped_and_constrained(self):
        surface, behavior, _ = _bound(scale_extent=(1, 4), translate_extent=((0, 0), (800, 600)))
        behavior.transform(surface, ZoomTransform(10, 0, 0))
        assert surface.transform.k == 4
        behavior.transform(surface, ZoomTransform(1, 100, 0))
        assert surface.transform == ZoomTransform(1, 0, 0)

    def test_wheel_zooms_about_pointer(self):
        surface, _, events = _bound(scale_extent=(1, 4))
        surface.dispatch(WheelEvent(400, 300, -10_000))
        assert surface.transform == ZoomTransform(4, -1200, -900)
        assert [kind for kind, _ in events] == ["start", "zoom", "end"]

    def test_wheel_at_limit_is_noop(self):
        surface, _, events = _bound(scale_extent=(1, 4))
        surface.dispatch(WheelEvent(400, 300, 500))
        assert surface.transform == ZOOM_IDENTITY
        assert events == []

    def test_filtered_events_are_ignored(self):
        surface, _, events = _bound()
        surface.dispatch(WheelEvent(400, 300, -100, ctrl_key=True))
        surface.dispatch(PointerEvent("pointerdown", 0, 0, button=2))
        assert events == []

    def test_mouse_drag(self):
        surface, behavior, events = _bound()
        surface.dispatch(PointerEvent("pointerdown", 100, 100))
        assert behavior.gesture_active
        surface.dispatch(PointerEvent("pointermove", 150, 120))
        surface.dispatch(PointerEvent("pointerup", 150, 120))
        assert not behavior.gesture_active
        assert surface.transform == ZoomTransform(1, 50, 20)
        assert [kind for kind, _ in events] == ["start", "zoom", "end"]

    def test_drag_within_translate_extent(self):
        surface, _, _ = _bound(translate_extent=((0, 0), (800, 600)))
        surface.dispatch(PointerEvent("pointerdown", 100, 100))
        surface.dispatch(PointerEvent("pointermove", 300, 200))
        surface.dispatch(PointerEvent("pointerup", 300, 200))
        assert surface.transform == ZoomTransform(1, 0, 0)

    def test_wheel_ignored_during_drag(self):
        surface, _, _ = _bound()
        surface.dispatch(PointerEvent("pointerdown", 100, 100))
        surface.dispatch(WheelEvent(100, 100, -500))
        assert surface.transform.k == 1

    def test_move_without_gesture_is_ignored(self):
        surface, _, events = _bound()
        surface.dispatch(PointerEvent("pointermove", 10, 10))
        assert events == []

    def test_pinch(self):
        surface, _, events = _bound()
        surface.dispatch(PointerEvent("pointerdown", 100, 100, pointer_id=1, pointer_type="touch"))
        surface.dispatch(PointerEvent("pointerdown", 200, 100, pointer_id=2, pointer_type="touch"))
        surface.dispatch(PointerEvent("pointermove", 300, 100, pointer_id=2, pointer_type="touch"))
        assert surface.transform.k == pytest.approx(2)
        assert surface.transform.x == pytest.approx(-100)
        assert surface.transform.y == pytest.approx(-100)
        surface.dispatch(PointerEvent("pointerup", 300, 100, pointer_id=2, pointer_type="touch"))
        surface.dispatch(PointerEvent("pointermove", 110, 100, pointer_id=1, pointer_type="touch"))
        assert surface.transform.k == pytest.approx(2)
        assert surface.transform.x == pytest.approx(-90)
        surface.dispatch(PointerEvent("pointerup", 110, 100, pointer_id=1, pointer_type="touch"))
        assert [kind for kind, _ in events][0] == "start"
        assert [kind for kind, _ in events][-1] == "end"
        assert [kind for kind, _ in events].count("start") == 1

    def test_double_click(self):
        surface, _, _ = _bound()
        surface.dispatch(DoubleClickEvent(400, 300))
        assert surface.transform == ZoomTransform(2, -400, -300)
        surface.dispatch(DoubleClickEvent(400, 300, shift_key=True))
        assert surface.transform == ZoomTransform(1, 0, 0)

    def test_scale_by_and_translate_by(self):
        surface, behavior, _ = _bound()
        behavior.scale_by(surface, 2)
        assert surface.transform == ZoomTransform(2, -400, -300)
        behavior.translate_by(surface, 10, 0)
        assert surface.transform == ZoomTransform(2, -380, -300)

    def test_events_carry_source(self):
        surface, behavior, _ = _bound()
        sources = []
        behavior.on("zoom.test", lambda e: sources.append(e.source_event))
        click = DoubleClickEvent(10, 10)
        surface.dispatch(click)
        assert sources == [click]
