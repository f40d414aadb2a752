"""Build backend-neutral draw commands for one frame of the map."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from landmap.map_config import MapSettings
from landmap.marker_index import Marker, marker_stats
from landmap.viewport_engine import CameraState, ViewportSize, world_to_screen


@dataclass(frozen=True)
class ClearCommand:
    width: float
    height: float
    color: str


@dataclass(frozen=True)
class LineCommand:
    x1: float
    y1: float
    x2: float
    y2: float
    color: str
    width: float = 1.0


@dataclass(frozen=True)
class CircleCommand:
    x: float
    y: float
    radius: float
    fill: str
    outline: Optional[str] = None
    outline_width: float = 0.0


@dataclass(frozen=True)
class TextCommand:
    x: float
    y: float
    text: str
    color: str
    point_size: float = 12.0
    align: str = "left"


DrawCommand = Union[ClearCommand, LineCommand, CircleCommand, TextCommand]


@dataclass(frozen=True)
class RenderStyle:
    background: str = "#0a0a0a"
    grid_color: str = "#1a1a1a"
    unclaimed_color: str = "#666666"
    claimed_color: str = "#3b82f6"
    current_color: str = "#22c55e"
    outline_color: str = "#ffffff"
    label_color: str = "#ffffff"
    hud_color: str = "#666666"
    unclaimed_radius: float = 5.0
    claimed_radius: float = 8.0
    current_radius: float = 10.0
    hovered_radius: float = 12.0
    outline_width: float = 2.0
    grid_spacing: float = 10000.0
    cull_margin: float = 50.0
    label_zoom_threshold: float = 0.3
    label_offset: float = 15.0
    label_point_size: float = 12.0
    hud_point_size: float = 14.0
    hud_origin: Tuple[float, float] = field(default=(10.0, 20.0))
    hud_line_height: float = 20.0

    @classmethod
    def from_settings(cls, settings: MapSettings) -> "RenderStyle":
        colors = settings.colors
        defaults = cls()
        return cls(
            background=colors.get("background", defaults.background),
            grid_color=colors.get("grid", defaults.grid_color),
            unclaimed_color=colors.get("unclaimed", defaults.unclaimed_color),
            claimed_color=colors.get("claimed", defaults.claimed_color),
            current_color=colors.get("current", defaults.current_color),
            outline_color=colors.get("outline", defaults.outline_color),
            label_color=colors.get("label", defaults.label_color),
            hud_color=colors.get("hud", defaults.hud_color),
            grid_spacing=settings.grid_spacing,
            cull_margin=settings.cull_margin,
            label_zoom_threshold=settings.label_zoom_threshold,
        )


class CommandPainter:
    """Target surface for draw commands; backends override the primitives."""

    def clear(self, width: float, height: float, color: str) -> None: ...
    def draw_line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float) -> None: ...
    def draw_circle(
        self,
        x: float,
        y: float,
        radius: float,
        fill: str,
        outline: Optional[str],
        outline_width: float,
    ) -> None: ...
    def draw_text(self, x: float, y: float, text: str, color: str, point_size: float, align: str) -> None: ...


def paint_commands(painter: CommandPainter, commands: Iterable[DrawCommand]) -> None:
    for command in commands:
        if isinstance(command, ClearCommand):
            painter.clear(command.width, command.height, command.color)
        elif isinstance(command, LineCommand):
            painter.draw_line(command.x1, command.y1, command.x2, command.y2, command.color, command.width)
        elif isinstance(command, CircleCommand):
            painter.draw_circle(
                command.x,
                command.y,
                command.radius,
                command.fill,
                command.outline,
                command.outline_width,
            )
        elif isinstance(command, TextCommand):
            painter.draw_text(command.x, command.y, command.text, command.color, command.point_size, command.align)


def command_to_mapping(command: DrawCommand) -> Dict[str, Any]:
    data = asdict(command)
    data["type"] = type(command).__name__.replace("Command", "").lower()
    return data


def marker_appearance(
    marker: Marker,
    hovered_id: Optional[str],
    current_id: Optional[str],
    style: RenderStyle,
) -> Tuple[str, float, bool]:
    """Return (fill colour, radius, outlined) for ``marker``.

    Rules apply in order, later ones overriding: unclaimed, claimed,
    current identity, hovered.
    """
    is_current = current_id is not None and marker.pubkey == current_id
    is_hovered = hovered_id is not None and marker.pubkey == hovered_id

    color = style.unclaimed_color
    radius = style.unclaimed_radius
    if marker.has_claimed:
        color = marker.color or style.claimed_color
        radius = style.claimed_radius
    if is_current:
        color = style.current_color
        radius = style.current_radius
    if is_hovered:
        radius = style.hovered_radius
    return color, radius, is_current or is_hovered


def marker_label(marker: Marker) -> str:
    if marker.title:
        return marker.title
    if marker.metadata is not None:
        label = marker.metadata.label()
        if label:
            return label
    return f"{marker.pubkey[:8]}..."


def grid_lines(camera: CameraState, size: ViewportSize, spacing: float) -> Tuple[List[float], List[float]]:
    """Screen positions of the vertical and horizontal grid lines in view.

    The start is the visible world edge floored to the grid interval, and the
    range runs one interval past the far edge so no strip is left uncovered.
    """
    if size.is_empty or not math.isfinite(spacing) or spacing <= 0:
        return [], []
    return (
        _axis_lines(camera.offset_x, camera.zoom, size.width, spacing),
        _axis_lines(camera.offset_y, camera.zoom, size.height, spacing),
    )


def _axis_lines(offset: float, zoom: float, extent: float, spacing: float) -> List[float]:
    left = -offset / zoom
    start = math.floor(left / spacing) * spacing
    end = left + extent / zoom + spacing
    count = int(math.ceil((end - start) / spacing))
    return [(start + index * spacing) * zoom + offset for index in range(count)]


def _in_view(screen_x: float, screen_y: float, size: ViewportSize, margin: float) -> bool:
    return -margin <= screen_x <= size.width + margin and -margin <= screen_y <= size.height + margin


def build_draw_commands(
    camera: CameraState,
    size: ViewportSize,
    markers: Sequence[Marker],
    hovered_id: Optional[str] = None,
    current_id: Optional[str] = None,
    style: Optional[RenderStyle] = None,
    *,
    hud_counts: Optional[Tuple[int, int]] = None,
) -> List[DrawCommand]:
    """Produce the commands for one frame. Reads its inputs, mutates nothing."""
    style = style or RenderStyle()
    commands: List[DrawCommand] = [ClearCommand(max(size.width, 0.0), max(size.height, 0.0), style.background)]
    if size.is_empty or not math.isfinite(camera.zoom) or camera.zoom <= 0:
        return commands

    verticals, horizontals = grid_lines(camera, size, style.grid_spacing)
    for screen_x in verticals:
        commands.append(LineCommand(screen_x, 0.0, screen_x, size.height, style.grid_color))
    for screen_y in horizontals:
        commands.append(LineCommand(0.0, screen_y, size.width, screen_y, style.grid_color))

    show_labels = camera.zoom > style.label_zoom_threshold
    for marker in markers:
        screen_x, screen_y = world_to_screen(camera, marker.x, marker.y)
        if not _in_view(screen_x, screen_y, size, style.cull_margin):
            continue
        color, radius, outlined = marker_appearance(marker, hovered_id, current_id, style)
        commands.append(
            CircleCommand(
                screen_x,
                screen_y,
                radius,
                color,
                outline=style.outline_color if outlined else None,
                outline_width=style.outline_width if outlined else 0.0,
            )
        )
        if marker.has_claimed and show_labels:
            commands.append(
                TextCommand(
                    screen_x,
                    screen_y + radius + style.label_offset,
                    marker_label(marker),
                    style.label_color,
                    style.label_point_size,
                    align="center",
                )
            )

    if hud_counts is None:
        stats = marker_stats(markers)
        hud_counts = (stats.claimed, stats.total)
    hud_x, hud_y = style.hud_origin
    commands.append(TextCommand(hud_x, hud_y, f"Zoom: {camera.zoom:.2f}x", style.hud_color, style.hud_point_size))
    commands.append(
        TextCommand(
            hud_x,
            hud_y + style.hud_line_height,
            f"Bases: {hud_counts[0]}/{hud_counts[1]}",
            style.hud_color,
            style.hud_point_size,
        )
    )
    return commands
