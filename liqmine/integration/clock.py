"""
Time sources for the staking service.

The core never reads the clock; the service asks a ``Clock`` once per
operation and passes the timestamp down. Monotonicity is assumed but not
guaranteed: the reward engine clamps a regression to zero elapsed time.
"""

from __future__ import annotations

import time


class Clock:
    """Interface for a Unix-seconds time source."""

    def now(self) -> int:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """Settable clock for tests, demos and deterministic replays."""

    def __init__(self, start: int = 0) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = int(timestamp)

    def advance(self, seconds: int) -> int:
        self._now += int(seconds)
        return self._now
