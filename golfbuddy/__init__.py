"""
GolfBuddy - offline-first golf scoring with cursor-based cloud sync.
"""

from .core import GolfBuddy

try:
    from importlib.metadata import version

    __version__ = version("golfbuddy-sync")
except Exception:
    __version__ = "0.0.0"

__all__ = ["GolfBuddy"]
