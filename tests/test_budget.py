"""Tests for the turn budget."""

import asyncio

import pytest

from deepsearch.agent.budget import Budget
from deepsearch.errors import CancellationRequested


class TestDeadline:
    """Tests for deadline tracking."""

    def test_time_remaining_counts_down(self):
        """Test remaining time with an injected clock."""
        now = [100.0]
        budget = Budget(60, clock=lambda: now[0])

        assert budget.time_remaining() == 60
        now[0] = 130.0
        assert budget.time_remaining() == 30
        assert not budget.expired

    def test_expired_never_negative(self):
        """Test that an expired budget reports zero time remaining."""
        now = [0.0]
        budget = Budget(10, clock=lambda: now[0])

        now[0] = 25.0

        assert budget.expired
        assert budget.time_remaining() == 0.0


class TestCancellation:
    """Tests for the cancellation signal."""

    def test_cancel_is_idempotent_and_runs_callbacks_once(self):
        """Test that callbacks run once with the first reason."""
        budget = Budget(60)
        reasons: list[str] = []
        budget.add_cancel_callback(reasons.append)

        budget.cancel("client disconnected")
        budget.cancel("second call")

        assert budget.cancelled
        assert budget.cancel_reason == "client disconnected"
        assert reasons == ["client disconnected"]

    def test_late_callback_runs_immediately(self):
        """Test that registering after cancellation runs the callback at once."""
        budget = Budget(60)
        budget.cancel("gone")
        reasons: list[str] = []

        budget.add_cancel_callback(reasons.append)

        assert reasons == ["gone"]

    def test_raise_if_cancelled(self):
        """Test that raise_if_cancelled raises only after cancel."""
        budget = Budget(60)
        budget.raise_if_cancelled()

        budget.cancel("stop")

        with pytest.raises(CancellationRequested, match="stop"):
            budget.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        """Test that guard passes through the awaited result."""
        budget = Budget(60)

        async def work() -> int:
            return 42

        assert await budget.guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_cancels_in_flight_work(self):
        """Test that cancellation aborts guarded work immediately."""
        budget = Budget(60)
        work_cancelled = asyncio.Event()

        async def work() -> None:
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                work_cancelled.set()
                raise

        asyncio.get_running_loop().call_later(0.01, budget.cancel, "abort")

        with pytest.raises(CancellationRequested):
            await asyncio.wait_for(budget.guard(work()), timeout=5)
        assert work_cancelled.is_set()

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        """Test that a budget sleep ends early with CancellationRequested."""
        budget = Budget(60)
        asyncio.get_running_loop().call_later(0.01, budget.cancel, "abort")

        with pytest.raises(CancellationRequested):
            await asyncio.wait_for(budget.sleep(30), timeout=5)

    @pytest.mark.asyncio
    async def test_sleep_completes_without_cancel(self):
        """Test that a short sleep returns normally."""
        budget = Budget(60)

        await budget.sleep(0.01)

        assert not budget.cancelled
