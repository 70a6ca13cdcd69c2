"""Epoch-seconds helpers shared by ingestion and storage."""

import math
import time
from collections.abc import Callable

Clock = Callable[[], float]


def epoch_now(clock: Clock = time.time) -> int:
    """Return the current time as whole epoch seconds."""
    return int(clock())


def is_number(value: object) -> bool:
    """True for finite ints/floats; bools are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_timestamp_fresh(
    timestamp: float, *, max_skew_sec: int = 3600, clock: Clock = time.time
) -> bool:
    """Check a timestamp is positive and within max_skew_sec of now, either side."""
    if not is_number(timestamp) or timestamp <= 0:
        return False
    return abs(timestamp - clock()) <= max_skew_sec
