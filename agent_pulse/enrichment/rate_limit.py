"""Rolling-window requests-per-minute limiter for model calls."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
MIN_WAIT_SECONDS = 0.05


class RequestRateLimiter:
    """
    Allow at most ``requests_per_minute`` acquisitions in any 60 s window.

    Shared by all workers of one batch. ``requests_per_minute=0`` disables
    limiting entirely.

    Usage:
        limiter = RequestRateLimiter(15)
        await limiter.acquire()
        response = await client.generate(prompt)
    """

    def __init__(
        self,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if requests_per_minute < 0:
            raise ValueError("requests_per_minute must be >= 0")
        self.requests_per_minute = requests_per_minute
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.requests_per_minute > 0

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= WINDOW_SECONDS:
            self._timestamps.popleft()

    async def acquire(self) -> None:
        """Wait until a request slot is free, then take it."""
        if not self.enabled:
            return

        while True:
            async with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self.requests_per_minute:
                    self._timestamps.append(now)
                    return
                wait = max(MIN_WAIT_SECONDS, WINDOW_SECONDS - (now - self._timestamps[0]))

            logger.debug("RPM cap %d reached, waiting %.2fs", self.requests_per_minute, wait)
            await self._sleep(wait)
