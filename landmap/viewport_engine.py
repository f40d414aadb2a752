"""Camera state, world/screen transforms and pointer handling for the map view.

Everything here is decoupled from Qt: the widget layer forwards pointer,
wheel and resize events and repaints when the engine reports a change.
Operations never raise on odd input (non-finite values, negative sizes);
they clamp or ignore it so the view cannot get stuck.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Tuple

from landmap.logging_utils import get_logger
from landmap.marker_index import Marker, find_marker

_LOGGER = get_logger("LandMap.Viewport")

MIN_ZOOM = 0.05
MAX_ZOOM = 5.0
DEFAULT_ZOOM = 0.15
HIT_RADIUS_PX = 15.0
BUTTON_ZOOM_STEP = 1.5
WHEEL_ZOOM_STEP = 1.15
CLICK_SLOP_PX = 4.0

Point = Tuple[float, float]


@dataclass(frozen=True)
class CameraState:
    """Zoom factor plus the screen position of world origin."""

    zoom: float = DEFAULT_ZOOM
    offset_x: float = 0.0
    offset_y: float = 0.0


@dataclass(frozen=True)
class ViewportSize:
    width: float = 0.0
    height: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.width <= 0.0 or self.height <= 0.0

    @property
    def center(self) -> Point:
        return self.width / 2.0, self.height / 2.0


def _finite(*values: float) -> bool:
    try:
        return all(math.isfinite(float(value)) for value in values)
    except (TypeError, ValueError):
        return False


def _safe_float(value: object, default: float = 0.0) -> float:
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def clamp_zoom(value: float, min_zoom: float = MIN_ZOOM, max_zoom: float = MAX_ZOOM) -> float:
    return max(min_zoom, min(max_zoom, value))


def world_to_screen(camera: CameraState, world_x: float, world_y: float) -> Point:
    return world_x * camera.zoom + camera.offset_x, world_y * camera.zoom + camera.offset_y


def screen_to_world(camera: CameraState, screen_x: float, screen_y: float) -> Point:
    return (screen_x - camera.offset_x) / camera.zoom, (screen_y - camera.offset_y) / camera.zoom


def zoom_camera(
    camera: CameraState,
    factor: float,
    anchor: Point,
    *,
    min_zoom: float = MIN_ZOOM,
    max_zoom: float = MAX_ZOOM,
) -> CameraState:
    """Scale ``camera`` by ``factor`` keeping the world point under ``anchor`` fixed.

    Invalid factors or anchors, and requests that clamping turns into no
    change, return ``camera`` unchanged.
    """
    if not _finite(factor) or factor <= 0.0:
        return camera
    anchor_x, anchor_y = anchor
    if not _finite(anchor_x, anchor_y):
        return camera
    next_zoom = clamp_zoom(camera.zoom * factor, min_zoom, max_zoom)
    if next_zoom == camera.zoom:
        return camera
    world_x = (anchor_x - camera.offset_x) / camera.zoom
    world_y = (anchor_y - camera.offset_y) / camera.zoom
    return CameraState(
        zoom=next_zoom,
        offset_x=anchor_x - world_x * next_zoom,
        offset_y=anchor_y - world_y * next_zoom,
    )


def center_camera(camera: CameraState, world_point: Point, size: ViewportSize) -> CameraState:
    """Return ``camera`` panned so ``world_point`` sits in the middle of the viewport."""
    world_x, world_y = world_point
    if size.is_empty or not _finite(world_x, world_y):
        return camera
    center_x, center_y = size.center
    return replace(
        camera,
        offset_x=-world_x * camera.zoom + center_x,
        offset_y=-world_y * camera.zoom + center_y,
    )


def visible_world_rect(camera: CameraState, size: ViewportSize) -> Tuple[float, float, float, float]:
    """World-space (left, top, right, bottom) covered by the viewport."""
    left, top = screen_to_world(camera, 0.0, 0.0)
    right, bottom = screen_to_world(camera, max(size.width, 0.0), max(size.height, 0.0))
    return left, top, right, bottom


def hit_test(
    camera: CameraState,
    point: Point,
    markers: Iterable[Marker],
    radius: float = HIT_RADIUS_PX,
) -> Optional[Marker]:
    """Return the first marker within ``radius`` screen pixels of ``point``.

    Markers are checked in the given order and the first match wins, even if
    a later marker is closer.
    """
    point_x, point_y = point
    if not _finite(point_x, point_y):
        return None
    for marker in markers:
        screen_x, screen_y = world_to_screen(camera, marker.x, marker.y)
        if math.hypot(screen_x - point_x, screen_y - point_y) < radius:
            return marker
    return None


class LatchState(str, Enum):
    NOT_CENTERED = "not_centered"
    CENTERED = "centered"


class AutoCenterLatch:
    """One-shot latch for centering on the logged-in identity.

    The latch fires once per login and only resets when the identity is
    cleared; marker refreshes and resizes never re-arm it.
    """

    def __init__(self) -> None:
        self._state = LatchState.NOT_CENTERED
        self._identity: Optional[str] = None

    @property
    def state(self) -> LatchState:
        return self._state

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    def track_identity(self, pubkey: Optional[str]) -> None:
        if pubkey is None:
            if self._identity is not None:
                _LOGGER.debug("Current identity cleared; auto-center re-armed")
            self._identity = None
            self.reset()
            return
        self._identity = pubkey

    def should_center(self) -> bool:
        return self._identity is not None and self._state is LatchState.NOT_CENTERED

    def mark_centered(self) -> None:
        self._state = LatchState.CENTERED

    def reset(self) -> None:
        self._state = LatchState.NOT_CENTERED


class ViewportEngine:
    """Owns camera state and answers transform and hit-test queries."""

    def __init__(
        self,
        *,
        initial_zoom: float = DEFAULT_ZOOM,
        min_zoom: float = MIN_ZOOM,
        max_zoom: float = MAX_ZOOM,
        hit_radius: float = HIT_RADIUS_PX,
        on_change: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._min_zoom = min_zoom
        self._max_zoom = max_zoom
        self._hit_radius = hit_radius
        self._camera = CameraState(zoom=clamp_zoom(_safe_float(initial_zoom, DEFAULT_ZOOM), min_zoom, max_zoom))
        self._size = ViewportSize()
        self._on_change = on_change
        self._drag_active = False
        self._drag_anchor: Point = (0.0, 0.0)
        self._drag_origin: Point = (0.0, 0.0)
        self._drag_travel = 0.0
        self._hovered_pubkey: Optional[str] = None
        self._selected_pubkey: Optional[str] = None
        self._latch = AutoCenterLatch()

    # State ---------------------------------------------------------------

    @property
    def camera(self) -> CameraState:
        return self._camera

    @property
    def size(self) -> ViewportSize:
        return self._size

    @property
    def dragging(self) -> bool:
        return self._drag_active

    @property
    def hovered_pubkey(self) -> Optional[str]:
        return self._hovered_pubkey

    @property
    def selected_pubkey(self) -> Optional[str]:
        return self._selected_pubkey

    @property
    def current_pubkey(self) -> Optional[str]:
        return self._latch.identity

    @property
    def auto_center_state(self) -> LatchState:
        return self._latch.state

    @property
    def hit_radius(self) -> float:
        return self._hit_radius

    def format_camera_debug(self) -> str:
        return "zoom={:.3f} offset=({:.1f}, {:.1f}) size={}x{} dragging={}".format(
            self._camera.zoom,
            self._camera.offset_x,
            self._camera.offset_y,
            int(self._size.width),
            int(self._size.height),
            self._drag_active,
        )

    # Transforms ----------------------------------------------------------

    def world_to_screen(self, world_x: float, world_y: float) -> Point:
        return world_to_screen(self._camera, world_x, world_y)

    def screen_to_world(self, screen_x: float, screen_y: float) -> Point:
        return screen_to_world(self._camera, screen_x, screen_y)

    def visible_world_rect(self) -> Tuple[float, float, float, float]:
        return visible_world_rect(self._camera, self._size)

    def hit_test(self, point: Point, markers: Iterable[Marker]) -> Optional[Marker]:
        return hit_test(self._camera, point, markers, self._hit_radius)

    # Camera operations ---------------------------------------------------

    def pan_by(self, dx: float, dy: float) -> bool:
        """Shift the camera while a drag is in progress."""
        if not self._drag_active or not _finite(dx, dy):
            return False
        if dx == 0 and dy == 0:
            return False
        self._set_camera(
            replace(self._camera, offset_x=self._camera.offset_x + dx, offset_y=self._camera.offset_y + dy),
            "pan",
        )
        return True

    def zoom_at(self, factor: float, anchor: Optional[Point] = None) -> bool:
        """Zoom by ``factor`` around ``anchor`` (viewport centre when omitted)."""
        target = anchor if anchor is not None else self._size.center
        updated = zoom_camera(self._camera, factor, target, min_zoom=self._min_zoom, max_zoom=self._max_zoom)
        if updated is self._camera:
            return False
        self._set_camera(updated, "zoom")
        return True

    def zoom_in(self) -> bool:
        return self.zoom_at(BUTTON_ZOOM_STEP)

    def zoom_out(self) -> bool:
        return self.zoom_at(1.0 / BUTTON_ZOOM_STEP)

    def wheel(self, delta_y: float, anchor: Point) -> bool:
        """Zoom one wheel notch; negative delta (scroll up) zooms in."""
        if not _finite(delta_y) or delta_y == 0:
            return False
        factor = WHEEL_ZOOM_STEP if delta_y < 0 else 1.0 / WHEEL_ZOOM_STEP
        return self.zoom_at(factor, anchor)

    def center_on(self, world_x: float, world_y: float) -> bool:
        updated = center_camera(self._camera, (world_x, world_y), self._size)
        if updated is self._camera:
            return False
        self._set_camera(updated, "center")
        return True

    def center_on_marker(self, pubkey: Optional[str], markers: Sequence[Marker]) -> bool:
        marker = find_marker(markers, pubkey)
        if marker is None:
            return False
        return self.center_on(marker.x, marker.y)

    def resize(self, width: float, height: float) -> bool:
        """Record a new viewport size; zero-area or invalid sizes are ignored."""
        if not _finite(width, height) or width <= 0 or height <= 0:
            return False
        new_size = ViewportSize(float(width), float(height))
        if new_size == self._size:
            return False
        self._size = new_size
        self._notify("resize")
        return True

    # Current identity ----------------------------------------------------

    def set_current_identity(self, pubkey: Optional[str]) -> None:
        token = pubkey.strip().lower() if pubkey else None
        self._latch.track_identity(token)

    def maybe_auto_center(self, markers: Sequence[Marker]) -> bool:
        """Center on the current identity the first time it is available."""
        if not self._latch.should_center() or self._size.is_empty:
            return False
        marker = find_marker(markers, self._latch.identity)
        if marker is None:
            return False
        self.center_on(marker.x, marker.y)
        self._latch.mark_centered()
        _LOGGER.debug("Auto-centered on current identity %s at (%d, %d)", marker.pubkey[:8], marker.x, marker.y)
        return True

    # Pointer input -------------------------------------------------------

    def begin_drag(self, point: Point) -> bool:
        point_x, point_y = point
        if not _finite(point_x, point_y):
            return False
        self._drag_active = True
        self._drag_anchor = (point_x - self._camera.offset_x, point_y - self._camera.offset_y)
        self._drag_origin = (point_x, point_y)
        self._drag_travel = 0.0
        return True

    def drag_to(self, point: Point) -> bool:
        if not self._drag_active:
            return False
        point_x, point_y = point
        if not _finite(point_x, point_y):
            return False
        self._drag_travel = max(
            self._drag_travel,
            math.hypot(point_x - self._drag_origin[0], point_y - self._drag_origin[1]),
        )
        target_x = point_x - self._drag_anchor[0]
        target_y = point_y - self._drag_anchor[1]
        return self.pan_by(target_x - self._camera.offset_x, target_y - self._camera.offset_y)

    def end_drag(self) -> bool:
        """Finish a drag. Returns True when the pointer barely moved (a click)."""
        if not self._drag_active:
            return False
        self._drag_active = False
        return self._drag_travel < CLICK_SLOP_PX

    def pointer_leave(self) -> None:
        self._drag_active = False
        self._set_hovered(None)

    def hover(self, point: Point, markers: Sequence[Marker]) -> Optional[Marker]:
        """Update the hovered marker; suppressed while a drag owns the pointer."""
        if self._drag_active:
            return None
        marker = self.hit_test(point, markers)
        self._set_hovered(marker.pubkey if marker else None)
        return marker

    def click(self, point: Point, markers: Sequence[Marker]) -> Optional[Marker]:
        if self._drag_active:
            return None
        marker = self.hit_test(point, markers)
        if marker is not None:
            self._selected_pubkey = marker.pubkey
            self._notify("select")
        return marker

    def clear_selection(self) -> None:
        if self._selected_pubkey is not None:
            self._selected_pubkey = None
            self._notify("select")

    # Internal helpers ----------------------------------------------------

    def _set_hovered(self, pubkey: Optional[str]) -> None:
        if pubkey == self._hovered_pubkey:
            return
        self._hovered_pubkey = pubkey
        self._notify("hover")

    def _set_camera(self, camera: CameraState, reason: str) -> None:
        self._camera = camera
        self._notify(reason)

    def _notify(self, reason: str) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(reason)
        except Exception as exc:  # pragma: no cover - repaint hooks must not break input handling
            _LOGGER.warning("Viewport change callback failed (%s): %s", reason, exc)
