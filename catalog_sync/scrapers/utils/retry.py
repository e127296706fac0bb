"""Retry policy with jittered exponential backoff for page fetches."""

import random
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from catalog_sync.core.exceptions import FetchFailure
from catalog_sync.scrapers.budget import RunBudget


logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _is_retriable(exc: BaseException) -> bool:
    return isinstance(exc, FetchFailure) and exc.retriable


class wait_jittered_exponential(wait_base):
    """Wait ``base ** attempt * uniform(low, high)`` seconds, capped at ``max_delay``.

    The multiplicative jitter keeps retries from different workers out of
    step and avoids a fixed, robotic cadence towards the remote server.
    """

    def __init__(
        self,
        base: float = 2.0,
        jitter: Tuple[float, float] = (3.0, 7.0),
        max_delay: float = 120.0,
        rng: Optional[random.Random] = None,
    ):
        self.base = base
        self.low, self.high = jitter
        self.max_delay = max_delay
        self.rng = rng or random.Random()

    def delay_for(self, attempt: int) -> float:
        delay = (self.base ** attempt) * self.rng.uniform(self.low, self.high)
        return min(self.max_delay, delay)

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.attempt_number)


class RetryPolicy:
    """Decides whether and how long to wait before re-attempting a fetch.

    Only retriable FetchFailures (transient, blocked) are retried. After
    ``max_attempts`` the last failure is re-raised to the caller. Backoff
    sleeps go through the run budget, so a wait that would overrun the
    deadline raises BudgetExceeded instead.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base: float = 2.0,
        jitter: Tuple[float, float] = (3.0, 7.0),
        max_delay: float = 120.0,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if jitter[0] > jitter[1]:
            raise ValueError("jitter lower bound must not exceed upper bound")
        self.max_attempts = max_attempts
        self._wait = wait_jittered_exponential(base, jitter, max_delay, rng)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base=settings.RETRY_BACKOFF_BASE,
            jitter=(settings.RETRY_JITTER_MIN, settings.RETRY_JITTER_MAX),
            max_delay=settings.RETRY_MAX_DELAY_SECONDS,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff in seconds after the ``attempt``-th failure (1-based)."""
        return self._wait.delay_for(attempt)

    async def run(
        self,
        operation: Callable[[int], Awaitable[T]],
        budget: RunBudget,
    ) -> T:
        """Run ``operation(attempt_number)`` under this policy.

        Raises:
            FetchFailure: The last failure once attempts are exhausted, or
                immediately for a non-retriable failure
            BudgetExceeded: If the budget ran out before or between attempts
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(_is_retriable),
            sleep=budget.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                budget.check()
                result = await operation(attempt.retry_state.attempt_number)
        return result


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "fetch_retry_scheduled",
        attempt=retry_state.attempt_number,
        delay_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
        url=getattr(exc, "url", None),
        kind=getattr(getattr(exc, "kind", None), "value", None),
        error=str(exc) if exc else None,
    )
