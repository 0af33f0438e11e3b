"""Token-bucket limiter shared by every outbound ledger request.

The remote API enforces its own per-caller ceiling (about one request per
second without an API key), so reads and submissions from all components
go through one bucket.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from tonamm.utils.polling import SleepFunc

logger = logging.getLogger(__name__)


class TokenBucket:
    """Async token bucket.

    Args:
        rate: Tokens added per second
        capacity: Maximum burst size
        clock: Monotonic time source
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be positive: {rate}")
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1: {capacity}")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock: Optional[asyncio.Lock] = None
        self.waits = 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        if self._lock is None:
            self._lock = asyncio.Lock()

        # serialise waiters so tokens are handed out in arrival order
        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                wait = (1.0 - self._tokens) / self.rate
                self.waits += 1
                logger.debug(f"Rate limit reached, waiting {wait:.2f}s")
                await self._sleep(wait)
                self._refill()
            self._tokens -= 1.0

    async def __aenter__(self) -> "TokenBucket":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class UnlimitedBucket(TokenBucket):
    """No-op limiter for in-process ledgers."""

    def __init__(self):
        super().__init__(rate=1.0, capacity=1)

    async def acquire(self) -> None:
        return None
