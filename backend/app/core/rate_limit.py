import asyncio, math, time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

WINDOW_SECONDS = 60


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int = 0

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class FixedWindowRateLimiter:
    """Per-key request counter over wall-clock aligned one-minute windows.

    Every call counts, including rejected ones. Counters live in this process
    only, so the effective limit scales with the number of instances.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._counts: Dict[Tuple[str, int], int] = {}
        self._slot = -1
        self.lock = asyncio.Lock()

    async def allow(self, key: str, limit: int) -> RateLimitDecision:
        now = self._clock()
        slot = int(now // WINDOW_SECONDS)
        async with self.lock:
            if slot != self._slot:
                self._prune(slot)
                self._slot = slot
            count = self._counts.get((key, slot), 0) + 1
            self._counts[(key, slot)] = count
        return RateLimitDecision(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=(slot + 1) * WINDOW_SECONDS,
            retry_after=max(0, math.ceil((slot + 1) * WINDOW_SECONDS - now)),
        )

    def _prune(self, current_slot: int) -> None:
        stale = [k for k in self._counts if k[1] < current_slot]
        for k in stale:
            del self._counts[k]
