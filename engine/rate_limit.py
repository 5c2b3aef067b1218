"""Token-bucket rate limiting shared across concurrent resolutions."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    async def acquire(self, tokens: int = 1) -> None:
        raise NotImplementedError


class AsyncTokenBucket:
    """Token bucket whose waits are cooperative and cancellable.

    A caller reserves its token under a plain lock and then sleeps until the
    reservation matures, so one bucket can be shared by every request of
    the process (and by several event loops). A cancelled wait gives its
    token back only while it is still the newest reservation; otherwise
    later waiters already hold the slots behind it and the slot is lost.
    """

    def __init__(
        self,
        rate_per_second: float,
        burst: int = 1,
        *,
        name: str = "limiter",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        self.rate = float(rate_per_second)
        self.capacity = max(1, int(burst))
        self.name = name
        self._clock = clock
        self._tokens = float(self.capacity)
        self._last = clock()
        self._lock = threading.Lock()
        self._ticket = 0

    def _reserve(self, tokens: int) -> tuple[float, int]:
        """Take ``tokens`` and return ``(delay, ticket)`` for the reservation."""
        with self._lock:
            now = self._clock()
            self._tokens = min(self.capacity, self._tokens + (now - self._last) * self.rate)
            self._last = now
            self._tokens -= tokens
            self._ticket += 1
            if self._tokens >= 0:
                return 0.0, self._ticket
            return -self._tokens / self.rate, self._ticket

    def _refund(self, tokens: int, ticket: int) -> bool:
        with self._lock:
            if ticket != self._ticket:
                return False
            self._ticket -= 1
            self._tokens = min(float(self.capacity), self._tokens + tokens)
            return True

    async def acquire(self, tokens: int = 1) -> None:
        delay, ticket = self._reserve(tokens)
        if delay <= 0:
            return
        logger.debug("[RATELIMIT] name=%s wait=%.3fs", self.name, delay)
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            if not self._refund(tokens, ticket):
                logger.debug("[RATELIMIT] name=%s cancelled wait behind later reservations", self.name)
            raise


class UnlimitedRateLimiter:
    """Limiter that never waits."""

    async def acquire(self, tokens: int = 1) -> None:
        return None
