"""Time helpers for event timestamps."""

import time


def epoch_ms() -> int:
    """Return current UTC time as integer epoch milliseconds, the event timestamp unit."""

    return time.time_ns() // 1_000_000
