"""Tests for per-user request limiting."""

import pytest

from deepsearch.config import RateLimitConfig
from deepsearch.errors import RateLimitExceeded
from deepsearch.services.rate_limit import RateLimiter


def make_limiter(**overrides) -> tuple[RateLimiter, list[float]]:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    config = RateLimitConfig(**{"limit": "2/minute", **overrides})
    return RateLimiter(config=config, sleep=fake_sleep), sleeps


class TestCheckAndRecord:
    """Tests for recording requests against the window."""

    def test_counts_down_then_rejects(self):
        """Test remaining allowance and rejection once the limit is reached."""
        limiter, _ = make_limiter()

        first = limiter.check_and_record("alice")
        second = limiter.check_and_record("alice")
        third = limiter.check_and_record("alice")

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert third.allowed is False
        assert third.limit == 2
        assert third.reset_at >= first.reset_at

    def test_users_are_limited_separately(self):
        """Test that the default scope keys the window by user."""
        limiter, _ = make_limiter(limit="1/minute")

        assert limiter.check_and_record("alice").allowed
        assert limiter.check_and_record("bob").allowed
        assert not limiter.check_and_record("alice").allowed

    def test_global_scope_shares_one_window(self):
        """Test that the global scope counts every user together."""
        limiter, _ = make_limiter(limit="1/minute", scope="global")

        assert limiter.check_and_record("alice").allowed
        assert not limiter.check_and_record("bob").allowed

    def test_admin_bypass(self):
        """Test that admins are never limited and do not consume the window."""
        limiter, _ = make_limiter(limit="1/minute", admin_user_ids=frozenset({"root"}))

        decisions = [limiter.check_and_record("root") for _ in range(5)]

        assert all(decision.allowed and decision.bypassed for decision in decisions)
        assert limiter.check_and_record("alice").allowed


class TestAcquire:
    """Tests for applying the limit policy."""

    @pytest.mark.asyncio
    async def test_reject_policy_raises_immediately(self):
        """Test that the reject policy raises without waiting."""
        limiter, sleeps = make_limiter(limit="1/minute")
        await limiter.acquire("alice")

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire("alice")

        assert sleeps == []
        assert exc_info.value.decision.remaining == 0
        assert exc_info.value.decision.limit == 1

    @pytest.mark.asyncio
    async def test_wait_policy_retries_with_capped_waits(self):
        """Test that the wait policy sleeps a bounded number of times before giving up."""
        limiter, sleeps = make_limiter(limit="1/minute", policy="wait", wait_retries=2, wait_max_seconds=0.5)
        await limiter.acquire("alice")

        with pytest.raises(RateLimitExceeded):
            await limiter.acquire("alice")

        assert len(sleeps) == 2
        assert all(0 <= wait <= 0.5 for wait in sleeps)

    @pytest.mark.asyncio
    async def test_allowed_request_returns_decision(self):
        """Test that an allowed request is recorded and returned."""
        limiter, _ = make_limiter()

        decision = await limiter.acquire("alice")

        assert decision.allowed
        assert decision.remaining == 1
