"""Filesystem helpers for golfbuddy."""

import os
from pathlib import Path


def get_golfbuddy_home() -> Path:
    """Return the golfbuddy data directory.

    ``GOLFBUDDY_DATA_DIR`` wins over the default ``~/.golfbuddy``.
    """
    override = os.environ.get("GOLFBUDDY_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".golfbuddy"
