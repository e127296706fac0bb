"""Tests for the retry policy."""

import random

import pytest

from catalog_sync.core.exceptions import BudgetExceeded, FailureKind, FetchFailure
from catalog_sync.scrapers.budget import RunBudget
from catalog_sync.scrapers.utils.retry import RetryPolicy

from helpers import blocked, transient

URL = "https://shop.test/p/1"


class TestBackoff:
    def test_delay_grows_exponentially_within_jitter_bounds(self):
        policy = RetryPolicy(base=2.0, jitter=(3.0, 7.0), rng=random.Random(1))

        for attempt in range(1, 5):
            delay = policy.delay_for(attempt)
            assert 2 ** attempt * 3.0 <= delay <= 2 ** attempt * 7.0

    def test_delay_is_capped(self):
        policy = RetryPolicy(base=2.0, jitter=(3.0, 7.0), max_delay=20.0)

        assert policy.delay_for(10) == 20.0

    def test_invalid_configuration_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(jitter=(7.0, 3.0))


class TestRetryPolicyRun:
    async def test_transient_failure_is_retried_until_success(self, clock):
        budget = RunBudget(None, clock=clock, sleeper=clock.sleep)
        policy = RetryPolicy(max_attempts=3, base=2.0, jitter=(3.0, 3.0))
        attempts = []

        async def operation(attempt):
            attempts.append(attempt)
            if attempt < 3:
                raise transient(URL)
            return "ok"

        assert await policy.run(operation, budget) == "ok"
        assert attempts == [1, 2, 3]
        # 2**1 * 3 then 2**2 * 3
        assert clock.sleeps == [6.0, 12.0]

    async def test_blocked_failure_is_retried(self, budget, retry_policy):
        attempts = []

        async def operation(attempt):
            attempts.append(attempt)
            if attempt == 1:
                raise blocked(URL)
            return "ok"

        assert await retry_policy.run(operation, budget) == "ok"
        assert attempts == [1, 2]

    async def test_malformed_failure_is_not_retried(self, budget, retry_policy):
        attempts = []

        async def operation(attempt):
            attempts.append(attempt)
            raise FetchFailure(URL, FailureKind.MALFORMED, "HTTP 404", status_code=404)

        with pytest.raises(FetchFailure) as exc_info:
            await retry_policy.run(operation, budget)
        assert exc_info.value.kind is FailureKind.MALFORMED
        assert attempts == [1]

    async def test_last_failure_reraised_after_max_attempts(self, budget, retry_policy):
        attempts = []

        async def operation(attempt):
            attempts.append(attempt)
            raise transient(URL)

        with pytest.raises(FetchFailure) as exc_info:
            await retry_policy.run(operation, budget)
        assert exc_info.value.kind is FailureKind.TRANSIENT
        assert attempts == [1, 2, 3]

    async def test_backoff_beyond_budget_raises_budget_exceeded(self, clock):
        budget = RunBudget(10, clock=clock, sleeper=clock.sleep)
        policy = RetryPolicy(max_attempts=3, base=2.0, jitter=(10.0, 10.0))

        async def operation(attempt):
            raise transient(URL)

        with pytest.raises(BudgetExceeded):
            await policy.run(operation, budget)
        assert clock.sleeps == []

    async def test_no_attempt_after_cancellation(self, budget, retry_policy):
        budget.cancel()
        called = False

        async def operation(attempt):
            nonlocal called
            called = True
            return "ok"

        with pytest.raises(BudgetExceeded):
            await retry_policy.run(operation, budget)
        assert not called
