"""Small helpers shared across the package: byte formatting and stop signals."""

from __future__ import annotations

import threading

__all__ = [
    "StoppedError",
    "UnwindError",
    "byte_count",
    "stopped",
    "safe_close",
    "N0",
    "N1",
    "N2",
    "N4",
    "N8",
    "N27",
    "N28",
    "N32",
    "N35",
]

# Integers that come up often in 256-bit arithmetic.
N0 = 0
N1 = 1
N2 = 2
N4 = 4
N8 = 8
N27 = 27
N28 = 28
N32 = 32
N35 = 35

_UNIT = 1024
_PREFIXES = "KMGTPE"


class StoppedError(Exception):
    """Raised when work is interrupted by a stop signal."""

    def __init__(self, message: str = "stopped") -> None:
        super().__init__(message)


class UnwindError(Exception):
    """Raised when processing has to be unwound."""

    def __init__(self, message: str = "unwound") -> None:
        super().__init__(message)


def byte_count(b: int) -> str:
    """Format a byte count with binary (KiB, MiB, ...) units."""
    if b < 0:
        raise ValueError(f"byte count must not be negative: {b}")
    if b < _UNIT:
        return f"{b} B"
    div, exp = _UNIT, 0
    n = b // _UNIT
    while n >= _UNIT:
        div *= _UNIT
        exp += 1
        n //= _UNIT
    return f"{b / div:.1f} {_PREFIXES[exp]}iB"


def stopped(event: threading.Event | None) -> None:
    """Raise StoppedError if the given stop event has been set."""
    if event is not None and event.is_set():
        raise StoppedError()


def safe_close(event: threading.Event | None) -> None:
    """Set the stop event; safe to call repeatedly or with None."""
    if event is not None:
        event.set()