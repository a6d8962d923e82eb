"""
Countdown to a dispensation's returnTime.

Ticks once per second: updates the countdown, warns once when five minutes or less
remain, and fires the expiry alert once when time runs out.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)

WARNING_THRESHOLD = timedelta(minutes=5)
TICK_PERIOD_SECONDS = 1.0


@dataclass(frozen=True)
class TimeRemaining:
    total_ms: int
    hours: int
    minutes: int
    seconds: int
    expired: bool


def time_remaining(return_time: datetime, now: datetime) -> TimeRemaining:
    diff_ms = int((return_time - now).total_seconds() * 1000)
    if diff_ms <= 0:
        return TimeRemaining(total_ms=0, hours=0, minutes=0, seconds=0, expired=True)
    hours, rest = divmod(diff_ms, 3600 * 1000)
    minutes, rest = divmod(rest, 60 * 1000)
    return TimeRemaining(total_ms=diff_ms, hours=hours, minutes=minutes, seconds=rest // 1000, expired=False)


def format_countdown(remaining: TimeRemaining) -> str:
    return f"{remaining.hours:02d}:{remaining.minutes:02d}:{remaining.seconds:02d}"


@dataclass
class ReminderState:
    warned: bool = False
    expired: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReminderScheduler:
    """Each scheduler owns its own latch state; stop() resets it."""

    def __init__(
        self,
        return_time: datetime,
        on_warning: Optional[Callable[[TimeRemaining], None]] = None,
        on_expired: Optional[Callable[[], None]] = None,
        on_tick: Optional[Callable[[str], None]] = None,
        clock: Callable[[], datetime] = _utcnow,
        period: float = TICK_PERIOD_SECONDS,
        warning_threshold: timedelta = WARNING_THRESHOLD,
    ) -> None:
        if return_time.tzinfo is None:
            return_time = return_time.replace(tzinfo=timezone.utc)
        self.return_time = return_time
        self.on_warning = on_warning
        self.on_expired = on_expired
        self.on_tick = on_tick
        self.period = period
        self.warning_threshold_ms = int(warning_threshold.total_seconds() * 1000)
        self.state = ReminderState()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> TimeRemaining:
        remaining = time_remaining(self.return_time, self._clock())
        if self.on_tick:
            self.on_tick(format_countdown(remaining))

        if remaining.expired:
            if not self.state.expired:
                self.state.expired = True
                logger.info("Dispensation return time reached")
                if self.on_expired:
                    self.on_expired()
            return remaining

        if remaining.total_ms <= self.warning_threshold_ms and not self.state.warned:
            self.state.warned = True
            if self.on_warning:
                self.on_warning(remaining)
        return remaining

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.period)

    def start(self) -> None:
        """Tick immediately, then every `period` seconds. Restarting replaces the running loop."""
        if self._task is not None:
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Cancel the loop and clear the latches. Safe to call repeatedly."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.state = ReminderState()
