"""
Time sources for the benchmark engine.

Components read time and sleep through a Clock so that long-running
schedules (a 24h canary, multi-minute load steps) can be replayed
deterministically with ManualClock.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta


class Clock:
    """Wall clock + monotonic clock + async sleep."""

    def now(self) -> datetime:
        """Current wall-clock time (UTC)."""
        return datetime.now(UTC)

    def monotonic(self) -> float:
        """Monotonic seconds, used for all duration measurements."""
        return time.monotonic()

    async def sleep(self, delay_s: float) -> None:
        """Suspend the calling task for delay_s seconds."""
        await asyncio.sleep(max(delay_s, 0.0))


class SystemClock(Clock):
    """Real time."""


class ManualClock(Clock):
    """
    Virtual clock that only advances when a task sleeps on it.

    Sleeping advances virtual time by the requested delay and yields to the
    event loop once, so schedules measured in minutes or hours complete
    instantly. Suited to sequential simulations; concurrent sleepers each
    advance the shared time.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._start = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._elapsed = 0.0

    @property
    def elapsed(self) -> float:
        """Virtual seconds elapsed since creation."""
        return self._elapsed

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed

    def advance(self, delay_s: float) -> None:
        """Move virtual time forward without yielding."""
        self._elapsed += max(delay_s, 0.0)

    async def sleep(self, delay_s: float) -> None:
        self.advance(delay_s)
        await asyncio.sleep(0)


_default_clock = SystemClock()


def default_clock() -> Clock:
    """Shared real-time clock used when a component is not given one."""
    return _default_clock
