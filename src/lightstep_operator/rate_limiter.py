"""Token-bucket rate limiter shared by all requests of one API client.

The bucket holds a single token (burst size 1), so requests are spaced at
least 1/rate seconds apart regardless of how many reconciliations run
concurrently through the same client.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable

from .config import (
    DEFAULT_RATE_LIMIT_PER_SECOND,
    DISABLE_RATE_LIMIT_ENV,
    RATE_LIMIT_ENV,
    parse_rate_limit,
)

logger = logging.getLogger(__name__)

BURST_SIZE = 1


class RateLimiter:
    """Paces outbound requests to a fixed number per second.

    Each call to wait() reserves the next free slot under a lock and then
    sleeps outside of it, so waiters are served in arrival order. A waiter
    that is cancelled while sleeping gives its slot back when no later
    reservation has been made.
    """

    def __init__(
        self,
        rate: float = DEFAULT_RATE_LIMIT_PER_SECOND,
        *,
        disabled: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            rate: Requests per second, must be positive.
            disabled: When True, wait() returns immediately.
            clock: Monotonic clock, injectable for tests.
            sleep: Async sleep, injectable for tests.
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive: {rate}")

        self._rate = float(rate)
        self._interval = 1.0 / self._rate
        self._disabled = disabled
        self._clock = clock
        self._sleep = sleep
        self._next_slot: float | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_env(cls) -> RateLimiter:
        """Create a limiter from LIGHTSTEP_API_RATE_LIMIT and LS_DISABLE_RATE_LIMIT."""
        return cls(
            rate=parse_rate_limit(os.environ.get(RATE_LIMIT_ENV)),
            disabled=len(os.environ.get(DISABLE_RATE_LIMIT_ENV, "")) > 0,
        )

    @property
    def rate(self) -> float:
        """Requests per second."""
        return self._rate

    @property
    def burst(self) -> int:
        return BURST_SIZE

    @property
    def disabled(self) -> bool:
        return self._disabled

    async def wait(self) -> None:
        """Block until a token is available.

        Raises:
            asyncio.CancelledError: If the waiting task is cancelled.
        """
        if self._disabled:
            return

        async with self._lock:
            now = self._clock()
            if self._next_slot is None or self._next_slot <= now:
                slot = now
            else:
                slot = self._next_slot
            self._next_slot = slot + self._interval

        delay = slot - now
        if delay <= 0:
            return

        logger.debug("Rate limit reached, waiting", extra={"delay_seconds": round(delay, 3)})
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            # Give the slot back if nobody queued behind it
            if self._next_slot == slot + self._interval:
                self._next_slot = slot
            raise
