"""PyQt6 backend: paints draw commands and feeds input into the viewport engine."""
from __future__ import annotations

from typing import Optional, Sequence

from PyQt6.QtCore import QPointF, QRectF, Qt, pyqtSignal
from PyQt6.QtGui import QBrush, QColor, QFont, QFontMetricsF, QPainter, QPen
from PyQt6.QtWidgets import QWidget

from landmap.claim_codec import ClaimRecord
from landmap.identity_feed import IdentityEntry
from landmap.logging_utils import get_logger
from landmap.map_config import MapSettings
from landmap.marker_index import Marker, find_marker
from landmap.render_pass import CommandPainter, RenderStyle, build_draw_commands, paint_commands
from landmap.snapshot_model import MarkerSnapshotModel
from landmap.viewport_engine import ViewportEngine

_LOGGER = get_logger("LandMap.Widget")

_FONT_FAMILY = "Inter"


def _qcolor(value: Optional[str], fallback: str = "white") -> QColor:
    color = QColor(value) if value else QColor(fallback)
    if not color.isValid():
        color = QColor(fallback)
    return color


class QtCommandPainter(CommandPainter):
    def __init__(self, painter: QPainter) -> None:
        self._painter = painter

    def clear(self, width: float, height: float, color: str) -> None:
        self._painter.fillRect(QRectF(0.0, 0.0, width, height), _qcolor(color, "black"))

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float) -> None:
        pen = QPen(_qcolor(color))
        pen.setWidthF(max(0.0, width))
        self._painter.setPen(pen)
        self._painter.setBrush(Qt.BrushStyle.NoBrush)
        self._painter.drawLine(QPointF(x1, y1), QPointF(x2, y2))

    def draw_circle(
        self,
        x: float,
        y: float,
        radius: float,
        fill: str,
        outline: Optional[str],
        outline_width: float,
    ) -> None:
        if outline:
            pen = QPen(_qcolor(outline))
            pen.setWidthF(max(0.0, outline_width))
            self._painter.setPen(pen)
        else:
            self._painter.setPen(Qt.PenStyle.NoPen)
        self._painter.setBrush(QBrush(_qcolor(fill)))
        self._painter.drawEllipse(QPointF(x, y), radius, radius)

    def draw_text(self, x: float, y: float, text: str, color: str, point_size: float, align: str) -> None:
        font = QFont(_FONT_FAMILY)
        font.setPixelSize(max(1, int(round(point_size))))
        self._painter.setFont(font)
        self._painter.setPen(QPen(_qcolor(color)))
        draw_x = x
        if align == "center":
            draw_x = x - QFontMetricsF(font).horizontalAdvance(text) / 2.0
        self._painter.drawText(QPointF(draw_x, y), text)


class MapWidget(QWidget):
    """Interactive map surface; all camera math lives in ViewportEngine."""

    marker_selected = pyqtSignal(object)

    def __init__(self, settings: Optional[MapSettings] = None, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._settings = settings or MapSettings()
        self._style = RenderStyle.from_settings(self._settings)
        self._model = MarkerSnapshotModel(include_orphan_claims=self._settings.include_orphan_claims)
        self._engine = ViewportEngine(
            initial_zoom=self._settings.initial_zoom,
            hit_radius=self._settings.hit_radius,
            on_change=self._handle_engine_change,
        )
        self.setMouseTracking(True)
        self.setCursor(Qt.CursorShape.OpenHandCursor)

    @property
    def engine(self) -> ViewportEngine:
        return self._engine

    @property
    def model(self) -> MarkerSnapshotModel:
        return self._model

    def markers(self) -> Sequence[Marker]:
        return self._model.markers

    def set_current_identity(self, pubkey: Optional[str]) -> None:
        self._model.set_current_identity(pubkey)
        self._engine.set_current_identity(self._model.current_pubkey)
        self._engine.maybe_auto_center(self.markers())
        self.update()

    def begin_refresh(self) -> int:
        return self._model.begin_refresh()

    def apply_refresh(self, token: int, identities: Sequence[IdentityEntry], claims: Sequence[ClaimRecord]) -> bool:
        if not self._model.apply_refresh(token, identities, claims):
            return False
        self._engine.maybe_auto_center(self.markers())
        self.update()
        return True

    def center_on_current(self) -> bool:
        return self._engine.center_on_marker(self._engine.current_pubkey, self.markers())

    def select_pubkey(self, pubkey: str) -> Optional[Marker]:
        marker = find_marker(self.markers(), pubkey)
        if marker is not None:
            self._engine.center_on(marker.x, marker.y)
            self.marker_selected.emit(marker)
        return marker

    # Qt events -----------------------------------------------------------

    def paintEvent(self, event) -> None:  # type: ignore[override]
        snapshot = self._model.snapshot
        commands = build_draw_commands(
            self._engine.camera,
            self._engine.size,
            snapshot.markers,
            hovered_id=self._engine.hovered_pubkey,
            current_id=self._engine.current_pubkey,
            style=self._style,
            hud_counts=(snapshot.claim_count, snapshot.identity_count),
        )
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        try:
            paint_commands(QtCommandPainter(painter), commands)
        finally:
            painter.end()

    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        size = event.size()
        self._engine.resize(size.width(), size.height())
        self._engine.maybe_auto_center(self.markers())

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton:
            pos = event.position()
            self._engine.begin_drag((pos.x(), pos.y()))
            self.setCursor(Qt.CursorShape.ClosedHandCursor)
            _LOGGER.debug("Drag initiated at (%.1f, %.1f); %s", pos.x(), pos.y(), self._engine.format_camera_debug())
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event) -> None:  # type: ignore[override]
        pos = event.position()
        if self._engine.dragging:
            self._engine.drag_to((pos.x(), pos.y()))
        else:
            self._engine.hover((pos.x(), pos.y()), self.markers())
        event.accept()

    def mouseReleaseEvent(self, event) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton and self._engine.dragging:
            was_click = self._engine.end_drag()
            self.setCursor(Qt.CursorShape.OpenHandCursor)
            pos = event.position()
            if was_click:
                marker = self._engine.click((pos.x(), pos.y()), self.markers())
                if marker is not None:
                    self.marker_selected.emit(marker)
            else:
                _LOGGER.debug("Drag finished; %s", self._engine.format_camera_debug())
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def leaveEvent(self, event) -> None:  # type: ignore[override]
        self._engine.pointer_leave()
        self.setCursor(Qt.CursorShape.OpenHandCursor)
        super().leaveEvent(event)

    def wheelEvent(self, event) -> None:  # type: ignore[override]
        pos = event.position()
        self._engine.wheel(-event.angleDelta().y(), (pos.x(), pos.y()))
        event.accept()

    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        key = event.key()
        if key in (Qt.Key.Key_Plus, Qt.Key.Key_Equal):
            self._engine.zoom_in()
        elif key == Qt.Key.Key_Minus:
            self._engine.zoom_out()
        elif key == Qt.Key.Key_H:
            self.center_on_current()
        else:
            super().keyPressEvent(event)
            return
        event.accept()

    def _handle_engine_change(self, reason: str) -> None:
        self.update()
