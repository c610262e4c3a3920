"""Wall-clock budget and cancellation supervisor for one turn.

One ``Budget`` is created per turn and shared by every tool call spawned in it.
Only the supervisor side (the turn runner or the HTTP layer) calls ``cancel``;
everything else reads it.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import TypeVar

from deepsearch.errors import CancellationRequested
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CancelCallback = Callable[[str], None]


class Budget:
    """Deadline plus cancellation flag scoped to a single turn."""

    def __init__(self, deadline_seconds: float, clock: Callable[[], float] = time.monotonic):
        """Start the budget clock.

        Args:
            deadline_seconds: Seconds from now until the budget expires
            clock: Monotonic clock, injectable for tests
        """
        self._clock = clock
        self._deadline = clock() + deadline_seconds
        self._cancelled = asyncio.Event()
        self._reason: str | None = None
        self._callbacks: list[CancelCallback] = []

    def time_remaining(self) -> float:
        """Seconds left before the deadline, never negative."""
        return max(0.0, self._deadline - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def cancel_reason(self) -> str | None:
        return self._reason

    def add_cancel_callback(self, callback: CancelCallback) -> None:
        """Register a callback run once with the reason when the budget is cancelled."""
        if self.cancelled:
            callback(self._reason or "cancelled")
            return
        self._callbacks.append(callback)

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the turn. Later calls are no-ops."""
        if self.cancelled:
            return

        logger.info(f"Budget cancelled: {reason}")
        self._reason = reason
        self._cancelled.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(reason)

    def raise_if_cancelled(self) -> None:
        """Raise ``CancellationRequested`` if the budget has been cancelled."""
        if self.cancelled:
            raise CancellationRequested(self._reason or "cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the budget is cancelled first.

        Raises:
            CancellationRequested: If cancellation wins the race; the awaitable is
                cancelled before this returns
        """
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                with suppress(asyncio.CancelledError):
                    await work

        if work.cancelled():
            raise CancellationRequested(self._reason or "cancelled")
        return work.result()

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until cancelled, whichever comes first.

        Raises:
            CancellationRequested: If the budget is cancelled during the wait
        """
        self.raise_if_cancelled()
        with suppress(TimeoutError):
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        self.raise_if_cancelled()
