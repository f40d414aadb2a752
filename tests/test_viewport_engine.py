from __future__ import annotations

import math

import pytest

from landmap.marker_index import Marker
from landmap.viewport_engine import (
    BUTTON_ZOOM_STEP,
    DEFAULT_ZOOM,
    MAX_ZOOM,
    MIN_ZOOM,
    WHEEL_ZOOM_STEP,
    CameraState,
    LatchState,
    ViewportEngine,
    ViewportSize,
    center_camera,
    hit_test,
    screen_to_world,
    visible_world_rect,
    world_to_screen,
    zoom_camera,
)

ALICE = "a" * 64
BOB = "b" * 64


def _marker(pubkey: str, x: int, y: int) -> Marker:
    return Marker(pubkey=pubkey, x=x, y=y)


def _engine(**kwargs) -> ViewportEngine:
    engine = ViewportEngine(**kwargs)
    engine.resize(800, 600)
    return engine


def test_transforms_are_inverse():
    camera = CameraState(zoom=0.37, offset_x=-120.5, offset_y=88.0)
    for world in [(0.0, 0.0), (12345.0, 99999.0), (-5.0, 3.25)]:
        screen = world_to_screen(camera, *world)
        back = screen_to_world(camera, *screen)
        assert back == pytest.approx(world)


def test_zoom_keeps_anchor_fixed():
    camera = CameraState(zoom=1.0)
    zoomed = zoom_camera(camera, 2.0, (100.0, 100.0))
    assert zoomed == CameraState(zoom=2.0, offset_x=-100.0, offset_y=-100.0)


@pytest.mark.parametrize("factor", [0.5, 1.15, 3.0, 1 / 1.15])
@pytest.mark.parametrize("anchor", [(0.0, 0.0), (400.0, 300.0), (799.0, 12.5)])
def test_world_point_under_anchor_is_invariant(factor, anchor):
    camera = CameraState(zoom=0.8, offset_x=-250.0, offset_y=40.0)
    before = screen_to_world(camera, *anchor)
    after = screen_to_world(zoom_camera(camera, factor, anchor), *anchor)
    assert after == pytest.approx(before)


def test_zoom_is_clamped_and_noop_returns_same_camera():
    camera = CameraState(zoom=4.0)
    assert zoom_camera(camera, 10.0, (0.0, 0.0)).zoom == MAX_ZOOM
    at_max = CameraState(zoom=MAX_ZOOM)
    assert zoom_camera(at_max, 2.0, (5.0, 5.0)) is at_max
    at_min = CameraState(zoom=MIN_ZOOM)
    assert zoom_camera(at_min, 0.1, (5.0, 5.0)) is at_min


@pytest.mark.parametrize("factor", [0.0, -1.0, math.nan, math.inf])
def test_invalid_zoom_factor_is_ignored(factor):
    camera = CameraState(zoom=1.0)
    assert zoom_camera(camera, factor, (0.0, 0.0)) is camera


def test_center_camera_puts_point_in_middle():
    size = ViewportSize(800, 600)
    camera = center_camera(CameraState(zoom=0.5), (1000.0, 2000.0), size)
    assert world_to_screen(camera, 1000.0, 2000.0) == pytest.approx((400.0, 300.0))
    empty = CameraState(zoom=0.5)
    assert center_camera(empty, (1.0, 1.0), ViewportSize()) is empty


def test_visible_world_rect():
    camera = CameraState(zoom=0.5, offset_x=-100.0, offset_y=50.0)
    left, top, right, bottom = visible_world_rect(camera, ViewportSize(800, 600))
    assert (left, top) == pytest.approx((200.0, -100.0))
    assert (right, bottom) == pytest.approx((1800.0, 1100.0))


def test_hit_test_uses_strict_radius():
    camera = CameraState(zoom=1.0)
    markers = [_marker(ALICE, 100, 100)]
    assert hit_test(camera, (114.9, 100.0), markers) is markers[0]
    assert hit_test(camera, (115.0, 100.0), markers) is None
    assert hit_test(camera, (math.nan, 0.0), markers) is None


def test_hit_test_first_marker_in_order_wins():
    camera = CameraState(zoom=1.0)
    far = _marker(ALICE, 110, 100)
    near = _marker(BOB, 101, 100)
    assert hit_test(camera, (100.0, 100.0), [far, near]) is far
    assert hit_test(camera, (100.0, 100.0), [near, far]) is near
    for _ in range(3):
        assert hit_test(camera, (100.0, 100.0), [far, near]) is far


def test_engine_defaults():
    engine = ViewportEngine()
    assert engine.camera == CameraState(zoom=DEFAULT_ZOOM)
    assert engine.size.is_empty
    assert engine.auto_center_state is LatchState.NOT_CENTERED
    assert "zoom=0.150" in engine.format_camera_debug()


def test_initial_zoom_is_clamped():
    assert ViewportEngine(initial_zoom=50).camera.zoom == MAX_ZOOM
    assert ViewportEngine(initial_zoom=float("nan")).camera.zoom == DEFAULT_ZOOM


def test_button_zoom_uses_viewport_centre():
    engine = _engine(initial_zoom=1.0)
    before = engine.screen_to_world(400.0, 300.0)
    assert engine.zoom_in() is True
    assert engine.camera.zoom == pytest.approx(BUTTON_ZOOM_STEP)
    assert engine.screen_to_world(400.0, 300.0) == pytest.approx(before)
    assert engine.zoom_out() is True
    assert engine.camera.zoom == pytest.approx(1.0)


def test_wheel_direction_and_noop():
    engine = _engine(initial_zoom=1.0)
    assert engine.wheel(-120, (10.0, 10.0)) is True
    assert engine.camera.zoom == pytest.approx(WHEEL_ZOOM_STEP)
    assert engine.wheel(120, (10.0, 10.0)) is True
    assert engine.camera.zoom == pytest.approx(1.0)
    camera = engine.camera
    assert engine.wheel(0, (10.0, 10.0)) is False
    assert engine.wheel(math.nan, (10.0, 10.0)) is False
    assert engine.camera is camera


def test_drag_pans_camera_and_reports_click():
    changes = []
    engine = _engine(initial_zoom=1.0, on_change=changes.append)
    assert engine.pan_by(10, 10) is False

    engine.begin_drag((100.0, 100.0))
    assert engine.dragging
    engine.drag_to((150.0, 80.0))
    assert (engine.camera.offset_x, engine.camera.offset_y) == (50.0, -20.0)
    assert "pan" in changes
    assert engine.end_drag() is False
    assert not engine.dragging

    engine.begin_drag((10.0, 10.0))
    engine.drag_to((12.0, 11.0))
    assert engine.end_drag() is True


def test_hover_is_suppressed_while_dragging():
    engine = _engine(initial_zoom=1.0)
    markers = [_marker(ALICE, 100, 100)]
    assert engine.hover((100.0, 100.0), markers) is markers[0]
    assert engine.hovered_pubkey == ALICE

    engine.begin_drag((0.0, 0.0))
    assert engine.hover((500.0, 500.0), markers) is None
    assert engine.hovered_pubkey == ALICE

    engine.pointer_leave()
    assert engine.hovered_pubkey is None
    assert not engine.dragging


def test_click_selects_marker():
    engine = _engine(initial_zoom=1.0)
    markers = [_marker(ALICE, 100, 100)]
    assert engine.click((300.0, 300.0), markers) is None
    assert engine.selected_pubkey is None
    assert engine.click((101.0, 99.0), markers) is markers[0]
    assert engine.selected_pubkey == ALICE
    engine.clear_selection()
    assert engine.selected_pubkey is None


def test_resize_ignores_degenerate_sizes():
    engine = _engine()
    assert engine.resize(0, 400) is False
    assert engine.resize(400, -1) is False
    assert engine.resize(math.inf, 400) is False
    assert engine.size == ViewportSize(800, 600)
    assert engine.resize(800, 600) is False
    assert engine.resize(1024, 768) is True


def test_center_on_marker():
    engine = _engine(initial_zoom=1.0)
    markers = [_marker(ALICE, 1000, 2000)]
    assert engine.center_on_marker(ALICE.upper(), markers) is True
    assert engine.world_to_screen(1000, 2000) == pytest.approx((400.0, 300.0))
    assert engine.center_on_marker(BOB, markers) is False


def test_auto_center_fires_once_per_login():
    engine = _engine(initial_zoom=1.0)
    markers = [_marker(ALICE, 1000, 2000), _marker(BOB, 5000, 5000)]
    assert engine.maybe_auto_center(markers) is False

    engine.set_current_identity(ALICE)
    assert engine.maybe_auto_center([]) is False
    assert engine.auto_center_state is LatchState.NOT_CENTERED
    assert engine.maybe_auto_center(markers) is True
    assert engine.auto_center_state is LatchState.CENTERED

    engine.begin_drag((0.0, 0.0))
    engine.drag_to((50.0, 50.0))
    engine.end_drag()
    camera = engine.camera
    assert engine.maybe_auto_center(markers) is False
    assert engine.camera is camera

    # switching accounts without logging out keeps the latch closed
    engine.set_current_identity(BOB)
    assert engine.maybe_auto_center(markers) is False

    engine.set_current_identity(None)
    assert engine.auto_center_state is LatchState.NOT_CENTERED
    engine.set_current_identity(BOB)
    assert engine.maybe_auto_center(markers) is True
    assert engine.world_to_screen(5000, 5000) == pytest.approx((400.0, 300.0))


def test_auto_center_waits_for_viewport_size():
    engine = ViewportEngine()
    engine.set_current_identity(ALICE)
    markers = [_marker(ALICE, 10, 10)]
    assert engine.maybe_auto_center(markers) is False
    engine.resize(200, 200)
    assert engine.maybe_auto_center(markers) is True


def test_repeated_zoom_never_crosses_bounds():
    engine = _engine()
    for _ in range(100):
        engine.zoom_in()
        assert MIN_ZOOM <= engine.camera.zoom <= MAX_ZOOM
    assert engine.camera.zoom == MAX_ZOOM

    for _ in range(100):
        engine.wheel(120, (10.0, 20.0))
        assert MIN_ZOOM <= engine.camera.zoom <= MAX_ZOOM
    assert engine.camera.zoom == MIN_ZOOM

    for _ in range(100):
        engine.wheel(-120, (700.0, 20.0))
    assert engine.camera.zoom == MAX_ZOOM

    for _ in range(100):
        engine.zoom_out()
    assert engine.camera.zoom == MIN_ZOOM
