"""Clock abstraction for wall-clock and monotonic time.

Everything that compares against calendar time (activation window, alert
cooldowns, daily frequency) asks a Clock instead of calling datetime.now()
directly, so tests can drive time explicitly:

    clock = ManualClock(datetime(2024, 3, 4, 8, 59, tzinfo=tz))
    controller.check()          # STANDBY
    clock.advance(minutes=1)
    controller.check()          # ACTIVE
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo


class Clock(ABC):
    """Time source for the engine. `now()` is always timezone-aware."""

    def __init__(self, tz: tzinfo) -> None:
        self.tz = tz

    @abstractmethod
    def now(self) -> datetime:
        """Current wall-clock time in the clock's timezone."""

    @abstractmethod
    def monotonic(self) -> float:
        """Monotonic seconds, for measuring intervals and cache ages."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for `seconds`."""

    def today(self):
        return self.now().date()


class SystemClock(Clock):
    """Real time, asyncio sleeps."""

    def __init__(self, tz: tzinfo | str = "UTC") -> None:
        super().__init__(ZoneInfo(tz) if isinstance(tz, str) else tz)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class ManualClock(Clock):
    """Clock that only moves when told to.

    `sleep()` advances the clock by the requested amount and yields to the
    event loop once, so scheduler loops make progress without real waiting.
    """

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            raise ValueError("ManualClock requires a timezone-aware start time")
        super().__init__(start.tzinfo)
        self._now = start
        self._monotonic = 0.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    async def sleep(self, seconds: float) -> None:
        self.advance(seconds=seconds)
        await asyncio.sleep(0)

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a timedelta expressed as keyword arguments."""
        delta = timedelta(**kwargs)
        self._now += delta
        self._monotonic += delta.total_seconds()
        return self._now

    def set(self, moment: datetime) -> None:
        """Jump to `moment`. Monotonic time follows forward jumps only."""
        delta = (moment - self._now).total_seconds()
        self._now = moment
        if delta > 0:
            self._monotonic += delta
