"""Wall-clock budget shared by every suspension point of one platform run."""

import asyncio
import math
import time
from typing import Awaitable, Callable, Optional

import structlog

from catalog_sync.core.exceptions import BudgetExceeded

logger = structlog.get_logger(__name__)


class RunBudget:
    """Single deadline computed when a run starts.

    Fetches, inter-page delays and retry backoffs call ``check()`` or
    ``sleep()`` before blocking. Nothing is preempted: a run notices an
    exhausted budget or a cancellation at its next check point.

    Args:
        max_seconds: Budget in seconds, or None for an unbounded run
        clock: Monotonic clock, injectable for tests
        sleeper: Coroutine used for waiting; defaults to a cancellable
            wait so ``cancel()`` wakes sleeping runs immediately
    """

    def __init__(
        self,
        max_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.max_seconds = max_seconds
        self._clock = clock
        self._sleeper = sleeper
        self._started = clock()
        self._cancelled = asyncio.Event()

    @property
    def deadline(self) -> float:
        if self.max_seconds is None:
            return math.inf
        return self._started + self.max_seconds

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> float:
        return self.deadline - self._clock()

    @property
    def exceeded(self) -> bool:
        return self.remaining() <= 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop the run at its next check point."""
        if not self._cancelled.is_set():
            logger.info("run_cancel_requested", elapsed=round(self.elapsed(), 2))
        self._cancelled.set()

    def check(self, reserve: float = 0.0) -> None:
        """Raise BudgetExceeded unless at least ``reserve`` seconds remain.

        Args:
            reserve: Expected duration of the work about to start
        """
        if self._cancelled.is_set():
            raise BudgetExceeded("cancelled")
        remaining = self.remaining()
        if remaining <= 0:
            raise BudgetExceeded("deadline")
        if reserve > 0 and remaining < reserve:
            raise BudgetExceeded(
                "deadline",
                f"{remaining:.1f}s left, next step expected to take {reserve:.1f}s",
            )

    async def sleep(self, seconds: float) -> None:
        """Sleep unless the budget is spent or would run out while sleeping."""
        self.check()
        if seconds <= 0:
            return
        if seconds > self.remaining():
            raise BudgetExceeded(
                "deadline",
                f"Sleeping {seconds:.1f}s would overrun the run deadline",
            )

        if self._sleeper is not None:
            await self._sleeper(seconds)
        else:
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass

        if self._cancelled.is_set():
            raise BudgetExceeded("cancelled")
