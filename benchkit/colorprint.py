"""Formatted and coloured output to text streams."""

from __future__ import annotations

import enum
import os
import sys
from collections.abc import Mapping
from typing import IO, Any

_SUPPORTED_TERM_VALUES = frozenset(
    {
        "xterm",
        "xterm-color",
        "xterm-256color",
        "screen",
        "screen-256color",
        "tmux",
        "tmux-256color",
        "rxvt-unicode",
        "rxvt-unicode-256color",
        "linux",
        "cygwin",
    }
)


class LogColor(enum.IntEnum):
    """Colours available for console output."""

    DEFAULT = 0
    RED = 1
    GREEN = 2
    YELLOW = 3
    BLUE = 4
    MAGENTA = 5
    CYAN = 6
    WHITE = 7


_ANSI_CODES = {
    LogColor.RED: "1",
    LogColor.GREEN: "2",
    LogColor.YELLOW: "3",
    LogColor.BLUE: "4",
    LogColor.MAGENTA: "5",
    LogColor.CYAN: "6",
    LogColor.WHITE: "7",
}


def format_string(fmt: str, *args: Any) -> str:
    """Expand a printf-style format with the given arguments."""
    return fmt % args


def color_print(out: IO[str], color: LogColor, fmt: str, *args: Any) -> None:
    """Write formatted text to out, wrapped in ANSI colour codes."""
    code = _ANSI_CODES.get(LogColor(color))
    if code is not None:
        out.write(format_string("\033[0;3%sm", code))
    out.write(format_string(fmt, *args) + "\033[m")


def is_color_terminal(
    stream: IO[str] | None = None, environ: Mapping[str, str] | None = None
) -> bool:
    """Return True if stream is a terminal whose TERM supports colours."""
    if stream is None:
        stream = sys.stdout
    if environ is None:
        environ = os.environ
    if environ.get("TERM") not in _SUPPORTED_TERM_VALUES:
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False