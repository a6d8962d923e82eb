"""Per-caller submission throttle with a periodic sweep of stale entries."""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from app.core.exceptions import RateLimited

logger = logging.getLogger(__name__)


class SubmissionRateLimiter:
    """
    Allows one accepted submission per `window` seconds per caller identity.

    The map is only touched from the event loop; a race between two requests from
    the same caller can at worst let one extra submission through.
    """

    def __init__(
        self,
        window: float = 30.0,
        retention: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if retention < window:
            raise ValueError("retention must be at least as long as window")
        self.window = window
        self.retention = retention
        self._clock = clock
        self._last_seen: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._last_seen)

    def __contains__(self, identity: str) -> bool:
        return identity in self._last_seen

    def check(self, identity: str) -> None:
        """Raise RateLimited if identity submitted within the window."""
        last = self._last_seen.get(identity)
        if last is None:
            return
        elapsed = self._clock() - last
        if elapsed < self.window:
            raise RateLimited(retry_after=self.window - elapsed)

    def record(self, identity: str) -> None:
        self._last_seen[identity] = self._clock()

    def acquire(self, identity: str) -> None:
        """check() and record() with no await in between."""
        self.check(identity)
        self.record(identity)

    def forget(self, identity: str) -> None:
        self._last_seen.pop(identity, None)

    def purge(self, now: Optional[float] = None) -> int:
        """Drop entries older than retention. Returns how many were removed."""
        if now is None:
            now = self._clock()
        stale = [k for k, ts in self._last_seen.items() if now - ts > self.retention]
        for k in stale:
            del self._last_seen[k]
        return len(stale)

    async def run_sweeper(self, interval: float = 30.0) -> None:
        """Purge forever every `interval` seconds; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval)
            removed = self.purge()
            if removed:
                logger.debug("Purged %d stale rate-limit entries", removed)
