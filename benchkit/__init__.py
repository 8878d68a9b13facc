"""Micro-benchmark registration, argument expansion and adaptive running."""

__version__ = "0.1.0"

__all__ = [
    "barrier",
    "colorprint",
    "log",
    "registry",
    "runner",
    "timer",
]