"""
Rate Limiter
Caps the number of external calls issued within a rolling time window.
"""
import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque

import structlog

logger = structlog.get_logger()


class RateLimiter:
    """
    Rolling-window limiter shared by all conversions of one ingestion run.

    Grant timestamps are owned by the instance and only touched while the
    lock is held, so concurrent callers are served one at a time. A caller
    that would exceed ``max_requests`` within ``window_seconds`` sleeps until
    the oldest grant leaves the window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be a positive integer")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._granted: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Block until a request may be issued, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                while self._granted and now - self._granted[0] >= self.window_seconds:
                    self._granted.popleft()

                if len(self._granted) < self.max_requests:
                    self._granted.append(now)
                    return

                wait_seconds = self.window_seconds - (now - self._granted[0])
                logger.info(
                    "Rate limit reached, waiting",
                    wait_seconds=round(wait_seconds, 2),
                    max_requests=self.max_requests
                )
                await self._sleep(wait_seconds)
