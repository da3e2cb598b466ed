"""Logging setup for golfbuddy.

Two outputs:
- ``<data_dir>/logs/local-YYYY-MM-DD.log``: regular log records from the
  ``golfbuddy`` logger tree.
- ``<data_dir>/logs/sync-events-YYYY-MM-DD.log``: one line per sync event,
  for a quick audit of what was pushed and pulled.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from golfbuddy.utils import get_golfbuddy_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir(data_dir: Optional[Path] = None) -> Path:
    log_dir = (data_dir or get_golfbuddy_home()) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def setup_golfbuddy_logging(level: str = "INFO", data_dir: Optional[Path] = None) -> logging.Logger:
    """Configure the ``golfbuddy`` logger with a dated file handler.

    Calling this twice does not add duplicate handlers. An unknown level
    falls back to INFO; DEBUG also logs to the console.
    """
    logger = logging.getLogger("golfbuddy")

    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logger.setLevel(numeric_level)

    formatter = logging.Formatter(LOG_FORMAT)

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        log_file = _log_dir(data_dir) / f"local-{_today()}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if numeric_level <= logging.DEBUG and not has_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    return logger


def log_sync_event(event_type: str, details: str, device_id: str = "unknown") -> None:
    """Append a single sync event line to today's event log."""
    timestamp = datetime.now(timezone.utc).isoformat()
    line = f"{timestamp} | {event_type} | device={device_id} | {details}\n"
    try:
        with open(_log_dir() / f"sync-events-{_today()}.log", "a", encoding="utf-8") as f:
            f.write(line)
    except OSError as e:
        logging.getLogger(__name__).debug(f"Could not write sync event log: {e}")


def log_sync(device_id: str, direction: str, count: int, errors: int = 0) -> None:
    """Record a push/pull/state phase with its record count."""
    log_sync_event(
        "sync",
        f"direction={direction}, count={count}, errors={errors}",
        device_id=device_id,
    )
