"""
Finsight — Rate Limiters
─────────────────────────
Proactive throttling in front of third-party APIs, so we never see a 429.

  TokenBucket     — steady refill, used inside adapters (FRED)
  IntervalLimiter — strict serialization with a minimum gap (Brave search)
  WindowLimiter   — N calls per fixed window, sleeps when exhausted (Polygon)

Limiters are plain objects. app.py builds one ProviderLimiters for the
process and hands it to both the aggregator and the orchestrator, so all
search traffic queues behind the same IntervalLimiter. Clock and sleep are
injectable for tests.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple

from market_engine.cache.ttl_config import (
    POLYGON_MAX_CALLS, POLYGON_WINDOW_S, SEARCH_MIN_INTERVAL_S,
)

log = logging.getLogger("fs.rate_limiter")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class TokenBucket:
    """Token bucket: refills at `rate` tokens/second up to `capacity`."""

    def __init__(self, capacity: float, rate: float,
                 clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep):
        self.capacity  = capacity
        self.rate      = rate       # tokens per second
        self._clock    = clock
        self._sleep    = sleep
        self._tokens   = capacity
        self._last     = clock()
        self._lock     = asyncio.Lock()

    async def acquire(self, tokens: float = 1.0) -> float:
        """
        Take tokens. Returns how long the caller must wait (0 if immediate).
        The balance may go negative: each caller books its tokens now, so
        concurrent callers queue behind one another instead of sharing a wait.
        """
        async with self._lock:
            now = self._clock()
            elapsed = now - self._last
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
            self._last   = now

            self._tokens -= tokens
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    async def wait(self, tokens: float = 1.0):
        """Acquire and sleep if needed."""
        wait = await self.acquire(tokens)
        if wait > 0:
            log.debug(f"Rate limit: sleeping {wait:.1f}s")
            await self._sleep(wait)


class IntervalLimiter:
    """
    At most one call per `min_interval` seconds, in arrival order.

    The slot timestamp is taken while holding the lock, so call starts are
    spaced by at least `min_interval` even under concurrent callers.
    """

    def __init__(self, min_interval: float = SEARCH_MIN_INTERVAL_S,
                 clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep,
                 name: str = "search"):
        self.min_interval = min_interval
        self.name         = name
        self._clock       = clock
        self._sleep       = sleep
        self._last: Optional[float] = None
        self._lock        = asyncio.Lock()

    async def wait(self):
        async with self._lock:
            if self._last is not None:
                gap = self._clock() - self._last
                if gap < self.min_interval:
                    wait = self.min_interval - gap
                    log.debug(f"[{self.name}] waiting {wait * 1000:.0f}ms before next call")
                    await self._sleep(wait)
            self._last = self._clock()


class WindowLimiter:
    """
    `max_calls` per `window` seconds. Once exhausted the caller sleeps until
    the window rolls over; the counter resets every window.
    """

    def __init__(self, max_calls: int = POLYGON_MAX_CALLS, window: float = POLYGON_WINDOW_S,
                 clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep,
                 name: str = "polygon"):
        self.max_calls = max_calls
        self.window    = window
        self.name      = name
        self._clock    = clock
        self._sleep    = sleep
        self._count    = 0
        self._start    = clock()
        self._lock     = asyncio.Lock()

    @property
    def calls_in_window(self) -> int:
        return self._count

    async def wait(self):
        async with self._lock:
            now = self._clock()
            if now - self._start >= self.window:
                self._start, self._count = now, 0

            if self._count >= self.max_calls:
                wait = self.window - (now - self._start)
                log.info(f"[{self.name}] {self.max_calls}/{self.window:.0f}s used — sleeping {wait:.1f}s")
                if wait > 0:
                    await self._sleep(wait)
                self._start, self._count = self._clock(), 0

            self._count += 1


# ── Provider bucket configurations ───────────────────────────
# (capacity, rate_per_second)
# capacity = burst allowance; rate = sustained throughput

_BUCKET_CONFIG: Dict[str, Tuple[float, float]] = {
    # FRED: generous limits (120/min). 1 per 2s, burst 10.
    "fred":          (10,  0.5),

    # Alpha Vantage: 25/day = 1 per 3456s. Allow burst of 6 (one yield curve).
    "alpha_vantage": (6,   1 / 3456),
}


def bucket_for(provider: str, clock: Clock = time.monotonic,
               sleep: Sleep = asyncio.sleep) -> TokenBucket:
    cap, rate = _BUCKET_CONFIG.get(provider, (5, 1 / 60))
    return TokenBucket(cap, rate, clock=clock, sleep=sleep)


@dataclass
class ProviderLimiters:
    """The limiter set one process shares across all callers."""
    search:  IntervalLimiter = field(default_factory=IntervalLimiter)
    polygon: WindowLimiter   = field(default_factory=WindowLimiter)
