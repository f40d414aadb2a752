from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from landmap import __version__
from landmap.claim_codec import CLAIM_KIND, ClaimRecord, decode_claims
from landmap.coordinates import format_coordinates, pubkey_to_coordinates, resolve_identity
from landmap.errors import InvalidIdentity
from landmap.identity_feed import METADATA_KIND, IdentityEntry, parse_identity_feed
from landmap.logging_utils import LOGGER_ROOT, configure_client_logging, get_logger, resolve_logs_dir
from landmap.map_config import MapSettings, load_map_settings, resolve_settings_path
from landmap.render_pass import RenderStyle, build_draw_commands, command_to_mapping
from landmap.snapshot_model import MarkerSnapshotModel
from landmap.viewport_engine import ViewportEngine

_LOGGER = get_logger(LOGGER_ROOT)


def load_event_file(path: Path) -> List[Mapping[str, Any]]:
    """Read events from a JSON array or a JSON-lines file; bad lines are skipped."""
    raw = path.read_text(encoding="utf-8")
    stripped = raw.lstrip()
    if stripped.startswith("["):
        data = json.loads(stripped)
        return [item for item in data if isinstance(item, Mapping)]
    events: List[Mapping[str, Any]] = []
    for line_number, line in enumerate(raw.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            _LOGGER.debug("Dropped invalid JSON on line %d of %s: %s", line_number, path, exc)
            continue
        if isinstance(payload, Mapping):
            events.append(payload)
    return events


def _event_kind(event: Mapping[str, Any]) -> Optional[int]:
    kind = event.get("kind")
    if isinstance(kind, bool) or not isinstance(kind, int):
        return None
    return kind


def split_events(
    events: Sequence[Mapping[str, Any]],
    *,
    limit: Optional[int] = None,
) -> Tuple[List[IdentityEntry], List[ClaimRecord]]:
    identity_events = [event for event in events if _event_kind(event) == METADATA_KIND]
    claim_events = [event for event in events if _event_kind(event) == CLAIM_KIND]
    if limit is not None:
        identity_events = identity_events[:limit]
        claim_events = claim_events[:limit]
    return parse_identity_feed(identity_events), decode_claims(claim_events)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="landmap", description="Explore the deterministic identity land map.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--settings", help="Path to landmap_settings.json")
    parser.add_argument("--events", help="JSON array or JSON-lines file of identity and claim events")
    parser.add_argument("--pubkey", help="Hex public key or npub of the current identity")
    parser.add_argument("--dump", action="store_true", help="Print one frame of draw commands as JSON and exit")
    parser.add_argument("--width", type=int, default=1280, help="Viewport width used with --dump")
    parser.add_argument("--height", type=int, default=800, help="Viewport height used with --dump")
    return parser


def dump_frame(
    settings: MapSettings,
    model: MarkerSnapshotModel,
    width: int,
    height: int,
) -> List[Dict[str, Any]]:
    engine = ViewportEngine(initial_zoom=settings.initial_zoom, hit_radius=settings.hit_radius)
    engine.resize(width, height)
    engine.set_current_identity(model.current_pubkey)
    engine.maybe_auto_center(model.markers)
    snapshot = model.snapshot
    commands = build_draw_commands(
        engine.camera,
        engine.size,
        snapshot.markers,
        current_id=engine.current_pubkey,
        style=RenderStyle.from_settings(settings),
        hud_counts=(snapshot.claim_count, snapshot.identity_count),
    )
    return [command_to_mapping(command) for command in commands]


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings_path = resolve_settings_path(args.settings)
    settings = load_map_settings(settings_path)
    if not args.dump:
        configure_client_logging(
            _LOGGER,
            resolve_logs_dir(Path(__file__).resolve().parent),
            retention=settings.client_log_retention,
            debug_enabled=settings.debug,
        )
    _LOGGER.info("Starting land map client %s (pid=%s)", __version__, os.getpid())
    _LOGGER.debug("Loaded settings from %s: %s", settings_path, settings)

    model = MarkerSnapshotModel(include_orphan_claims=settings.include_orphan_claims)
    if args.pubkey:
        try:
            model.set_current_identity(resolve_identity(args.pubkey))
        except InvalidIdentity as exc:
            parser.error(str(exc))
        _LOGGER.info(
            "Current identity %s sits at %s",
            model.current_pubkey[:8] if model.current_pubkey else "?",
            format_coordinates(pubkey_to_coordinates(model.current_pubkey)),
        )

    identities: List[IdentityEntry] = []
    claims: List[ClaimRecord] = []
    if args.events:
        events_path = Path(args.events).expanduser()
        try:
            events = load_event_file(events_path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            _LOGGER.error("Failed to load events from %s: %s", events_path, exc)
            return 2
        identities, claims = split_events(events, limit=settings.discovery_limit)
        _LOGGER.info("Loaded %d identities and %d claims from %s", len(identities), len(claims), events_path)

    token = model.begin_refresh()
    model.apply_refresh(token, identities, claims)

    if args.dump:
        frame = dump_frame(settings, model, max(1, args.width), max(1, args.height))
        json.dump(frame, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0
    return _run_window(settings, model, identities, claims)


def _run_window(
    settings: MapSettings,
    model: MarkerSnapshotModel,
    identities: Sequence[IdentityEntry],
    claims: Sequence[ClaimRecord],
) -> int:
    from PyQt6.QtWidgets import QApplication

    from landmap.qt_painter import MapWidget

    app = QApplication(sys.argv)
    window = MapWidget(settings)
    window.setWindowTitle("Land - identity map")
    window.resize(1280, 800)
    window.set_current_identity(model.current_pubkey)
    window.apply_refresh(window.begin_refresh(), identities, claims)
    window.marker_selected.connect(_log_selection)
    window.show()

    exit_code = app.exec()
    _LOGGER.info("Land map client exiting with code %s", exit_code)
    return int(exit_code)


def _log_selection(marker: object) -> None:
    pubkey = getattr(marker, "pubkey", "")
    _LOGGER.info("Selected marker %s at (%s, %s)", pubkey, getattr(marker, "x", "?"), getattr(marker, "y", "?"))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
