"""Shared millisecond clock.

Every track of a playback session and the recorder read time from a
``Clock``: a zero-argument callable returning milliseconds from an
arbitrary, monotonically increasing origin. Tests substitute a manual
clock.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Milliseconds from the monotonic clock."""
    return time.monotonic() * 1000.0


__all__ = ["Clock", "monotonic_ms"]
