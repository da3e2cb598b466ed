"""CLI command modules for golfbuddy."""

from golfbuddy.cli.commands.sync import cmd_sync

__all__ = ["cmd_sync"]
