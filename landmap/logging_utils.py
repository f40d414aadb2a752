from __future__ import annotations

import logging
import os
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_ROOT = "LandMap"
DEV_MODE_ENV_VAR = "LANDMAP_DEV_MODE"
LOG_DIR_ENV_VAR = "LANDMAP_LOG_DIR"
LOG_FILE_NAME = "landmap-client.log"
MAX_LOG_BYTES = 512 * 1024


def is_dev_mode() -> bool:
    value = os.getenv(DEV_MODE_ENV_VAR)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


class _ReleaseLogLevelFilter(logging.Filter):
    """Promote debug logs to INFO in release builds so diagnostics stay visible."""

    def __init__(self, release_mode: bool) -> None:
        super().__init__()
        self._release_mode = release_mode

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging shim
        if self._release_mode and record.levelno == logging.DEBUG:
            record.levelno = logging.INFO
            record.levelname = "INFO"
        return True


def get_logger(name: str) -> logging.Logger:
    """Return a ``LandMap.*`` logger.

    Child loggers stay at NOTSET and inherit the level of the ``LandMap``
    root, which ``configure_client_logging`` adjusts at startup.
    """
    full_name = name if name.startswith(LOGGER_ROOT) else f"{LOGGER_ROOT}.{name}"
    root = logging.getLogger(LOGGER_ROOT)
    if root.level == logging.NOTSET:
        root.setLevel(resolve_log_level(is_dev_mode()))
    logger = logging.getLogger(full_name)
    logger.propagate = True
    return logger


def resolve_logs_dir(base_path: Path, log_dir_name: str = "LandMap") -> Path:
    """
    Resolve the directory to store client logs.

    Strategy:
    - Use LANDMAP_LOG_DIR if set.
    - Fall back to XDG state/cache locations, then `cwd/logs/<log_dir_name>`.
    - Final fallback: tempdir/<log_dir_name>.
    ``base_path`` is only used to keep logs out of the package tree.
    """
    candidates = []

    env_override = os.environ.get(LOG_DIR_ENV_VAR)
    if env_override:
        candidates.append(Path(env_override).expanduser())

    state_home = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
    cache_home = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))
    candidates.append(state_home / "landmap" / "logs")
    candidates.append(cache_home / "landmap" / "logs")
    candidates.append(Path.cwd() / "logs")

    package_root = base_path.resolve()
    for base in candidates:
        target = base / log_dir_name
        if package_root in target.resolve().parents:
            continue
        try:
            target.mkdir(parents=True, exist_ok=True)
            return target
        except OSError:
            continue

    temp_fallback = Path(tempfile.gettempdir()) / "landmap" / log_dir_name
    temp_fallback.mkdir(parents=True, exist_ok=True)
    return temp_fallback


def build_rotating_file_handler(
    log_dir: Path,
    filename: str,
    *,
    retention: int = 5,
    max_bytes: int = MAX_LOG_BYTES,
    formatter: Optional[logging.Formatter] = None,
) -> logging.Handler:
    """Construct a rotating file handler with sane defaults."""
    retention = max(1, retention)
    backup_count = max(0, retention - 1)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / filename
    handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    if formatter is not None:
        handler.setFormatter(formatter)
    return handler


def resolve_log_level(debug_enabled: bool) -> int:
    return logging.DEBUG if debug_enabled else logging.INFO


def configure_client_logging(
    logger: logging.Logger,
    log_dir: Path,
    *,
    retention: int = 5,
    debug_enabled: bool = False,
) -> Optional[Path]:
    """Attach a rotating file handler to ``logger``; falls back to stderr on failure.

    Returns the log file path, or None when file logging could not be set up.
    """
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")
    logger.setLevel(resolve_log_level(debug_enabled))
    for existing in list(logger.handlers):
        if getattr(existing, "_landmap_handler", False):
            logger.removeHandler(existing)
            existing.close()
    try:
        handler = build_rotating_file_handler(log_dir, LOG_FILE_NAME, retention=retention, formatter=formatter)
    except OSError as exc:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.addFilter(_ReleaseLogLevelFilter(release_mode=not debug_enabled))
        setattr(stream_handler, "_landmap_handler", True)
        logger.addHandler(stream_handler)
        logger.warning("Failed to initialise file logging in %s: %s", log_dir, exc)
        return None
    handler.addFilter(_ReleaseLogLevelFilter(release_mode=not debug_enabled))
    setattr(handler, "_landmap_handler", True)
    logger.addHandler(handler)
    log_path = log_dir / LOG_FILE_NAME
    logger.debug(
        "Client logging initialised: path=%s retention=%d max_bytes=%d",
        log_path,
        max(1, retention),
        MAX_LOG_BYTES,
    )
    return log_path
