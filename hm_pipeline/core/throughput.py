"""Per-second event counters used for throughput log lines."""

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass(slots=True)
class ThroughputCounter:
    """Count calls and report the total once per fixed window.

    Purely observational: callers log the reported value and never branch on it.
    """

    window_s: float = 1.0
    clock: Callable[[], float] = time.monotonic
    count: int = 0
    window_start: float = field(default=-1.0)

    def __post_init__(self) -> None:
        if self.window_start < 0:
            self.window_start = self.clock()

    def tick(self) -> int | None:
        """Record one call; return the window total when the window has elapsed."""

        self.count += 1
        now = self.clock()
        if now - self.window_start < self.window_s:
            return None

        total = self.count
        self.count = 0
        self.window_start = now
        return total
