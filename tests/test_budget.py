"""Tests for the run budget."""

import asyncio

import pytest

from catalog_sync.core.exceptions import BudgetExceeded
from catalog_sync.scrapers.budget import RunBudget

from helpers import FakeClock


class TestRunBudget:
    def test_unbounded_budget_never_expires(self, clock):
        budget = RunBudget(None, clock=clock)
        clock.advance(10_000_000)

        budget.check(reserve=1_000)
        assert not budget.exceeded

    def test_check_raises_after_deadline(self, clock):
        budget = RunBudget(60, clock=clock)
        clock.advance(59)
        budget.check()

        clock.advance(1)
        with pytest.raises(BudgetExceeded) as exc_info:
            budget.check()
        assert exc_info.value.reason == "deadline"
        assert not exc_info.value.cancelled

    def test_check_honours_reserve(self, clock):
        budget = RunBudget(60, clock=clock)
        clock.advance(54)

        budget.check(reserve=5)
        with pytest.raises(BudgetExceeded):
            budget.check(reserve=18)

    def test_elapsed_and_remaining(self, clock):
        budget = RunBudget(100, clock=clock)
        clock.advance(30)

        assert budget.elapsed() == 30
        assert budget.remaining() == 70

    async def test_sleep_uses_injected_sleeper(self, clock):
        budget = RunBudget(60, clock=clock, sleeper=clock.sleep)

        await budget.sleep(5)

        assert clock.sleeps == [5]
        assert budget.elapsed() == 5

    async def test_sleep_past_deadline_raises_without_sleeping(self, clock):
        budget = RunBudget(60, clock=clock, sleeper=clock.sleep)
        clock.advance(50)

        with pytest.raises(BudgetExceeded):
            await budget.sleep(20)
        assert clock.sleeps == []

    async def test_zero_sleep_still_checks(self, clock):
        budget = RunBudget(10, clock=clock, sleeper=clock.sleep)
        clock.advance(10)

        with pytest.raises(BudgetExceeded):
            await budget.sleep(0)

    def test_cancel_raises_at_next_check(self):
        budget = RunBudget(None, clock=FakeClock())
        budget.cancel()

        assert budget.cancelled
        with pytest.raises(BudgetExceeded) as exc_info:
            budget.check()
        assert exc_info.value.cancelled

    async def test_cancel_wakes_sleeping_run(self):
        budget = RunBudget(60)

        async def cancel_soon():
            await asyncio.sleep(0.01)
            budget.cancel()

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(BudgetExceeded) as exc_info:
            await asyncio.wait_for(budget.sleep(30), timeout=5)
        await canceller
        assert exc_info.value.cancelled
