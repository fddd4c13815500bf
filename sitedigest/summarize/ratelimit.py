"""Token bucket used to cap LLM request throughput."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

# Floor for a single wait so float rounding cannot spin on zero-length sleeps
_MIN_WAIT = 0.001


class TokenBucket:
    """Discrete-refill token bucket.

    ``refill_amount`` tokens are added once per full ``refill_interval``
    seconds, never beyond ``capacity``. The bucket starts full.
    """

    def __init__(
        self,
        capacity: int,
        refill_amount: int,
        refill_interval: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if capacity < 1 or refill_amount < 1 or refill_interval <= 0:
            raise ValueError("capacity, refill_amount and refill_interval must be positive")
        self.capacity = capacity
        self.refill_amount = refill_amount
        self.refill_interval = refill_interval
        self._clock = clock
        self._sleep = sleep
        self._tokens = capacity
        self._last_refill = clock()

    @classmethod
    def per_minute(
        cls,
        rpm: int,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> TokenBucket:
        """At most *rpm* acquisitions in any 60-second window."""
        rpm = max(1, rpm)
        return cls(capacity=1, refill_amount=1, refill_interval=60.0 / rpm, clock=clock, sleep=sleep)

    @property
    def tokens(self) -> int:
        self._refill(self._clock())
        return self._tokens

    def _refill(self, now: float) -> None:
        if self._tokens >= self.capacity:
            return
        intervals = int((now - self._last_refill) // self.refill_interval)
        if intervals <= 0:
            return
        self._last_refill += intervals * self.refill_interval
        self._tokens = min(self.capacity, self._tokens + intervals * self.refill_amount)

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take *tokens* if available right now."""
        now = self._clock()
        self._refill(now)
        if self._tokens < tokens:
            return False
        if self._tokens == self.capacity:
            # Refill time only accrues while the bucket is below capacity
            self._last_refill = now
        self._tokens -= tokens
        return True

    def time_until_available(self, tokens: int = 1) -> float:
        """Seconds until *tokens* can be acquired (0 when they already can)."""
        now = self._clock()
        self._refill(now)
        missing = tokens - self._tokens
        if missing <= 0:
            return 0.0
        refills = -(-missing // self.refill_amount)
        elapsed = now - self._last_refill
        return max(0.0, refills * self.refill_interval - elapsed)

    async def acquire(self, tokens: int = 1) -> None:
        """Wait until *tokens* are available and take them."""
        if tokens > self.capacity:
            raise ValueError(f"cannot acquire {tokens} tokens from a bucket of {self.capacity}")
        while not self.try_acquire(tokens):
            delay = self.time_until_available(tokens)
            logger.debug("rate limited", extra={"wait_seconds": round(delay, 3)})
            await self._sleep(max(delay, _MIN_WAIT))
