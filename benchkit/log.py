"""Verbosity-levelled diagnostic logging to standard error."""

from __future__ import annotations

import sys
from typing import IO, Any

_log_level = 0


def get_log_level() -> int:
    """Return the current verbosity level."""
    return _log_level


def set_log_level(level: int) -> None:
    """Set the verbosity level; messages at or below it are written."""
    global _log_level
    _log_level = int(level)


def log_stream_for_level(level: int) -> IO[str] | None:
    """Return standard error if level is enabled, otherwise None."""
    if level <= _log_level:
        return sys.stderr
    return None


def vlog(level: int, message: Any) -> None:
    """Write a message with a level prefix if that level is enabled."""
    stream = log_stream_for_level(level)
    if stream is not None:
        stream.write(f"-- LOG({level}): {message}")