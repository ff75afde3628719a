"""
API Rate Limiter - Request Pacing
=================================

Keeps the tracker polite towards the Gamma API.

Gamma does not publish a hard budget for /markets/{id}, so instead of a
token bucket the tracker paces request *starts*: every outbound call is
given the next free slot, at least `min_interval` seconds after the
previous one. Callers waiting for a slot sleep independently, so fetches
for different markets still overlap in flight.

Example Usage:
--------------
limiter = PacingLimiter(min_interval=0.1)

await limiter.acquire("markets")
result = await api_call()
"""

import asyncio
import time
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class PacingLimiter:
    """
    Minimum-spacing limiter for one upstream service.
    """

    def __init__(
        self,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._next_slot = 0.0

        self.total_requests = 0
        self.total_wait_seconds = 0.0

    async def acquire(self, endpoint: str = "default") -> float:
        """
        Reserve the next request slot and wait for it.

        Slot reservation happens before the first await, so two coroutines
        on the same loop can never be handed the same slot.

        Returns:
            Seconds spent waiting (0.0 when the slot was already free)
        """
        now = self._clock()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self.min_interval
        self.total_requests += 1

        wait = slot - now
        if wait > 0:
            self.total_wait_seconds += wait
            logger.debug(f"⏳ Pacing {endpoint}: waiting {wait * 1000:.0f}ms")
            await self._sleep(wait)
        return wait

    def get_current_rate(self) -> dict:
        """
        Get pacing statistics.

        Returns:
            dict: {
                'total_requests': int,
                'min_interval': float,
                'total_wait_seconds': float,
                'max_requests_per_second': float
            }
        """
        max_rps = 1.0 / self.min_interval if self.min_interval > 0 else float("inf")
        return {
            'total_requests': self.total_requests,
            'min_interval': self.min_interval,
            'total_wait_seconds': self.total_wait_seconds,
            'max_requests_per_second': max_rps,
        }

    def reset(self):
        """Forget the reserved slot and the counters"""
        self._next_slot = 0.0
        self.total_requests = 0
        self.total_wait_seconds = 0.0
        logger.info("🔄 Rate limiter reset")
