"""Sliding-window rate limiter for outbound HTTP calls."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

_logger = logging.getLogger(__name__)


@dataclass
class SlidingWindowRateLimiter:
    """Allows at most ``max_requests`` calls in any ``window_seconds`` span.

    Callers that would exceed the budget wait until the oldest call leaves the
    window instead of failing.
    """

    max_requests: int = 100
    window_seconds: float = 60.0
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _calls: deque[float] = field(default_factory=deque, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")

    async def acquire(self) -> None:
        """Wait for a free slot and claim it."""
        async with self._lock:
            while True:
                now = self.clock()
                self._expire(now)
                if len(self._calls) < self.max_requests:
                    self._calls.append(now)
                    return
                wait = self._calls[0] + self.window_seconds - now
                _logger.info("Rate limit reached, waiting %.2fs", wait)
                await self.sleep(max(wait, 0.0))

    def remaining(self) -> int:
        """Slots still free in the current window."""
        self._expire(self.clock())
        return self.max_requests - len(self._calls)

    def reset(self) -> None:
        self._calls.clear()

    def _expire(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()
