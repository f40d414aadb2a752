"""Configuration helpers for the land map client."""
from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from landmap.logging_utils import get_logger, is_dev_mode
from landmap.viewport_engine import DEFAULT_ZOOM, HIT_RADIUS_PX, MAX_ZOOM, MIN_ZOOM

_LOGGER = get_logger("LandMap.Config")

SETTINGS_ENV_VAR = "LANDMAP_SETTINGS"
SETTINGS_FILE_NAME = "landmap_settings.json"
LOG_RETENTION_MIN = 1
LOG_RETENTION_MAX = 20


def _default_colors() -> Dict[str, str]:
    return {
        "background": "#0a0a0a",
        "grid": "#1a1a1a",
        "unclaimed": "#666666",
        "claimed": "#3b82f6",
        "current": "#22c55e",
        "outline": "#ffffff",
        "label": "#ffffff",
        "hud": "#666666",
    }


@dataclass
class MapSettings:
    """Values used to bootstrap the map view."""

    initial_zoom: float = DEFAULT_ZOOM
    hit_radius: float = HIT_RADIUS_PX
    grid_spacing: float = 10000.0
    label_zoom_threshold: float = 0.3
    cull_margin: float = 50.0
    discovery_limit: int = 500
    include_orphan_claims: bool = False
    client_log_retention: int = 5
    debug: bool = False
    colors: Dict[str, str] = field(default_factory=_default_colors)


def _float(value: Any, fallback: float, *, minimum: Optional[float] = None, maximum: Optional[float] = None) -> float:
    if value is None or isinstance(value, bool):
        return fallback
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(numeric):
        return fallback
    if minimum is not None and numeric < minimum:
        return minimum
    if maximum is not None and numeric > maximum:
        return maximum
    return numeric


def _int(value: Any, fallback: int, *, minimum: int, maximum: Optional[int] = None) -> int:
    if value is None or isinstance(value, bool):
        return fallback
    try:
        numeric = int(value)
    except (TypeError, ValueError):
        return fallback
    numeric = max(minimum, numeric)
    if maximum is not None:
        numeric = min(maximum, numeric)
    return numeric


def resolve_settings_path(explicit: Optional[str] = None) -> Path:
    if explicit:
        return Path(explicit).expanduser().resolve()
    env_override = os.getenv(SETTINGS_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser().resolve()
    return (Path.cwd() / SETTINGS_FILE_NAME).resolve()


def settings_from_mapping(data: Dict[str, Any]) -> MapSettings:
    defaults = MapSettings()
    colors = dict(defaults.colors)
    raw_colors = data.get("colors")
    if isinstance(raw_colors, dict):
        for key, value in raw_colors.items():
            if key in colors and isinstance(value, str) and value.strip():
                colors[key] = value.strip()
            elif key not in colors:
                _LOGGER.debug("Ignoring unknown colour key '%s'", key)

    return MapSettings(
        initial_zoom=_float(data.get("initial_zoom"), defaults.initial_zoom, minimum=MIN_ZOOM, maximum=MAX_ZOOM),
        hit_radius=_float(data.get("hit_radius"), defaults.hit_radius, minimum=1.0),
        grid_spacing=_float(data.get("grid_spacing"), defaults.grid_spacing, minimum=1.0),
        label_zoom_threshold=_float(data.get("label_zoom_threshold"), defaults.label_zoom_threshold, minimum=0.0),
        cull_margin=_float(data.get("cull_margin"), defaults.cull_margin, minimum=0.0),
        discovery_limit=_int(data.get("discovery_limit"), defaults.discovery_limit, minimum=1),
        include_orphan_claims=bool(data.get("include_orphan_claims", defaults.include_orphan_claims)),
        client_log_retention=_int(
            data.get("client_log_retention"),
            defaults.client_log_retention,
            minimum=LOG_RETENTION_MIN,
            maximum=LOG_RETENTION_MAX,
        ),
        debug=bool(data.get("debug", defaults.debug)) or is_dev_mode(),
        colors=colors,
    )


def load_map_settings(settings_path: Path) -> MapSettings:
    """Read settings from ``settings_path``; any problem yields the defaults."""
    try:
        raw = settings_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        _LOGGER.debug("Settings file not found at %s; using defaults", settings_path)
        return settings_from_mapping({})
    except OSError as exc:
        _LOGGER.warning("Failed to read %s; using defaults (%s)", settings_path, exc)
        return settings_from_mapping({})

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        _LOGGER.warning("Failed to parse %s; using defaults (%s)", settings_path, exc)
        return settings_from_mapping({})
    if not isinstance(data, dict):
        _LOGGER.warning("Settings at %s is not a JSON object; using defaults", settings_path)
        return settings_from_mapping({})

    known = {item.name for item in fields(MapSettings)}
    unknown = sorted(key for key in data if key not in known)
    if unknown:
        _LOGGER.debug("Ignoring unknown settings keys: %s", ", ".join(unknown))
    return settings_from_mapping(data)
