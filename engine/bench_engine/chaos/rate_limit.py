"""
Token bucket used to emulate a rate-limited backend.

The bucket reads time from the injected Clock so tests can drive it with
ManualClock.
"""

import asyncio
from dataclasses import dataclass, field

from bench_engine.runtime.clock import Clock, default_clock


@dataclass
class TokenBucket:
    """
    Token bucket rate limiter.

    Allows bursts up to `burst` tokens, refilling at `rate` tokens per second.
    """

    rate: float  # Tokens per second
    burst: int  # Maximum bucket size
    clock: Clock = field(default_factory=default_clock, repr=False)
    tokens: float = field(init=False)
    last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        """Initialize bucket with full tokens."""
        if self.rate <= 0:
            raise ValueError("rate must be > 0")
        if self.burst < 1:
            raise ValueError("burst must be >= 1")
        self.tokens = float(self.burst)
        self.last_update = self.clock.monotonic()

    def _refill(self) -> None:
        """Refill tokens based on time elapsed."""
        now = self.clock.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.burst, self.tokens + elapsed * self.rate)
        self.last_update = now

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available right now; never waits."""
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def retry_after(self, tokens: int = 1) -> float:
        """Seconds until `tokens` will be available."""
        self._refill()
        needed = tokens - self.tokens
        return max(needed / self.rate, 0.0)

    async def acquire(self, tokens: int = 1) -> float:
        """
        Acquire tokens, waiting if necessary.

        Returns:
            Time waited in seconds (0 if no wait needed)
        """
        async with self._lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0

            wait_time = (tokens - self.tokens) / self.rate
            await self.clock.sleep(wait_time)
            self._refill()
            self.tokens -= tokens
            return wait_time

    def available(self) -> float:
        """Current available tokens (without acquiring)."""
        self._refill()
        return self.tokens
