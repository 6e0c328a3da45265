"""Per-client minimum-interval rate limiter."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class RateLimiter:
    """Enforce a minimum interval between consecutive calls of one client.

    The timestamp lives on the instance, so two agents sharing a client
    share its budget. Calls are serialized through a lock.

    Example:
        >>> limiter = RateLimiter(min_interval=1.334)  # 45 req/min
        >>> await limiter.wait()
        >>> response = await http.post(...)

    Attributes:
        min_interval: Seconds required between two calls
        clock: Monotonic clock returning seconds
    """

    min_interval: float
    clock: Callable[[], float] = time.monotonic

    last_call: float | None = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    async def wait(self) -> float:
        """Block until the interval since the previous call has elapsed.

        Returns:
            Seconds actually waited
        """
        async with self._lock:
            waited = 0.0
            if self.last_call is not None:
                remaining = self.min_interval - (self.clock() - self.last_call)
                if remaining > 0:
                    await self._sleep(remaining)
                    waited = remaining
            self.last_call = self.clock()
            return waited

    async def _sleep(self, delay: float) -> None:
        """Async sleep helper (patched in tests)."""
        await asyncio.sleep(delay)
