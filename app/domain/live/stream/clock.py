"""Time source for the stream supervisor.

Every threshold (stale, idle, cooldown) is computed from `Clock.now()` so the
sweeps can be exercised deterministically with a fake clock.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current wall-clock time as epoch seconds."""
        ...


class SystemClock:
    def now(self) -> float:
        return time.time()


def to_ms(seconds: float) -> int:
    return int(seconds * 1000)


system_clock = SystemClock()
