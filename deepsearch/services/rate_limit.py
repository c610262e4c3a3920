"""Per-user request limiting using the limits library."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from limits import parse
from limits.storage import MemoryStorage, Storage
from limits.strategies import MovingWindowRateLimiter

from deepsearch.config import RateLimitConfig, get_settings
from deepsearch.errors import RateLimitExceeded
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

NAMESPACE = "chat"
GLOBAL_KEY = "global"


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of checking and recording one request."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    bypassed: bool = False


class RateLimiter:
    """Moving-window request limiter with an admin bypass."""

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        storage: Storage | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the limiter.

        Args:
            config: Rate limit configuration (defaults to settings)
            storage: limits storage backend (defaults to in-memory)
            sleep: Wait function used by the ``wait`` policy
        """
        self.config = config or get_settings().rate_limit
        self.storage = storage or MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)
        self.limit = parse(self.config.limit)
        self.sleep = sleep

    def _key(self, user_id: str) -> str:
        return GLOBAL_KEY if self.config.scope == "global" else user_id

    def check_and_record(self, user_id: str) -> RateLimitDecision:
        """Record one request for ``user_id`` if it is within the limit.

        Rejected requests are not counted against the window.

        Args:
            user_id: Caller's user id

        Returns:
            Decision with the remaining allowance and when the window resets
        """
        if user_id in self.config.admin_user_ids:
            logger.debug(f"Rate limit bypassed for admin {user_id}")
            return RateLimitDecision(
                allowed=True,
                limit=self.limit.amount,
                remaining=self.limit.amount,
                reset_at=datetime.now(UTC),
                bypassed=True,
            )

        key = self._key(user_id)
        allowed = self.limiter.hit(self.limit, NAMESPACE, key)
        stats = self.limiter.get_window_stats(self.limit, NAMESPACE, key)
        decision = RateLimitDecision(
            allowed=allowed,
            limit=self.limit.amount,
            remaining=max(0, stats.remaining),
            reset_at=datetime.fromtimestamp(stats.reset_time, UTC),
        )
        if not allowed:
            logger.warning(f"Rate limit {self.config.limit} exceeded for {key}")
        return decision

    async def acquire(self, user_id: str) -> RateLimitDecision:
        """Check and record a request, applying the configured policy when limited.

        Raises:
            RateLimitExceeded: If the request is rejected, or still limited after
                every wait under the ``wait`` policy
        """
        decision = self.check_and_record(user_id)
        if decision.allowed:
            return decision

        if self.config.policy == "wait":
            for attempt in range(1, self.config.wait_retries + 1):
                wait = min(max(0.0, decision.reset_at.timestamp() - time.time()), self.config.wait_max_seconds)
                logger.info(f"Waiting {wait:.2f}s for rate limit window ({attempt}/{self.config.wait_retries})")
                await self.sleep(wait)
                decision = self.check_and_record(user_id)
                if decision.allowed:
                    return decision

        raise RateLimitExceeded(decision)


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get or create rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter
