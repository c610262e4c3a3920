"""HTTP GET with per-attempt timeout, retries and exponential backoff."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

import httpx

from deepsearch.agent.budget import Budget
from deepsearch.errors import CancellationRequested
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class FailureKind(StrEnum):
    """Why a fetch ultimately failed."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http-status"
    PARSE = "parse"
    CANCELLED = "cancelled"


@dataclass
class RetryPolicy:
    """Exponential backoff: attempt ``n`` waits ``base_delay * multiplier ** (n - 1)``, capped at ``max_delay``."""

    max_retries: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 8.0
    jitter: bool = True

    def backoff(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)
        if self.jitter:
            # Spread concurrent retries without ever exceeding the cap
            return random.uniform(delay / 2, delay)
        return delay


@dataclass
class FetchSuccess:
    """Raw body of a successful GET."""

    url: str
    body: str
    content_type: str
    status_code: int
    attempts: int

    success = True


@dataclass
class FetchFailure:
    """Final failure of a GET after all retries."""

    url: str
    kind: FailureKind
    detail: str = ""
    status_code: int | None = None
    attempts: int = 0

    success = False

    @property
    def reason(self) -> str:
        """Human-readable reason, e.g. ``http-status:403`` or ``timeout``."""
        match self.kind:
            case FailureKind.HTTP_STATUS:
                return f"http-status:{self.status_code}"
            case FailureKind.TIMEOUT | FailureKind.CANCELLED:
                return self.kind.value
            case _:
                return f"{self.kind.value}: {self.detail}" if self.detail else self.kind.value

    @property
    def retryable(self) -> bool:
        return self.kind in {FailureKind.NETWORK, FailureKind.TIMEOUT, FailureKind.HTTP_STATUS}


FetchOutcome = FetchSuccess | FetchFailure


async def _attempt(client: httpx.AsyncClient, url: str, timeout: float, attempt: int) -> FetchOutcome:
    try:
        # httpx timeouts bound each read, so a server trickling bytes needs a wall-clock cap
        async with asyncio.timeout(timeout):
            response = await client.get(url, timeout=timeout)
    except TimeoutError:
        detail = f"no response within {timeout}s"
        return FetchFailure(url=url, kind=FailureKind.TIMEOUT, detail=detail, attempts=attempt)
    except httpx.TimeoutException as e:
        return FetchFailure(url=url, kind=FailureKind.TIMEOUT, detail=str(e), attempts=attempt)
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        return FetchFailure(url=url, kind=FailureKind.PARSE, detail=str(e), attempts=attempt)
    except httpx.HTTPError as e:
        return FetchFailure(url=url, kind=FailureKind.NETWORK, detail=str(e) or type(e).__name__, attempts=attempt)

    if not response.is_success:
        return FetchFailure(
            url=url,
            kind=FailureKind.HTTP_STATUS,
            detail=response.reason_phrase,
            status_code=response.status_code,
            attempts=attempt,
        )

    try:
        body = response.text
    except (UnicodeDecodeError, LookupError) as e:
        return FetchFailure(url=url, kind=FailureKind.PARSE, detail=f"undecodable body: {e}", attempts=attempt)

    return FetchSuccess(
        url=url,
        body=body,
        content_type=response.headers.get("content-type", ""),
        status_code=response.status_code,
        attempts=attempt,
    )


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    policy: RetryPolicy,
    budget: Budget | None = None,
    sleep: Sleep | None = None,
) -> FetchOutcome:
    """GET ``url``, retrying network errors, timeouts and non-2xx responses.

    Makes at most ``policy.max_retries + 1`` attempts. Cancellation through
    ``budget`` aborts immediately, mid-request or mid-wait, and is reported as a
    ``cancelled`` failure rather than retried. Once the budget deadline has passed
    no further retry is scheduled.

    Args:
        client: Shared async HTTP client
        url: URL to fetch
        timeout: Per-attempt timeout in seconds
        policy: Retry and backoff policy
        budget: Turn budget carrying the cancellation signal
        sleep: Override for the backoff wait (defaults to the budget's cancellable sleep)

    Returns:
        ``FetchSuccess`` with the body and content type, or the last ``FetchFailure``
    """
    if sleep is None:
        sleep = budget.sleep if budget else asyncio.sleep

    outcome: FetchOutcome = FetchFailure(url=url, kind=FailureKind.NETWORK, detail="not attempted")
    for attempt in range(1, policy.max_retries + 2):
        try:
            if budget:
                outcome = await budget.guard(_attempt(client, url, timeout, attempt))
            else:
                outcome = await _attempt(client, url, timeout, attempt)
        except CancellationRequested:
            logger.debug(f"Fetch of {url} cancelled during attempt {attempt}")
            return FetchFailure(url=url, kind=FailureKind.CANCELLED, attempts=attempt)

        if isinstance(outcome, FetchSuccess) or not outcome.retryable:
            return outcome

        if attempt > policy.max_retries:
            break

        if budget and budget.expired:
            logger.info(f"Turn budget expired, not retrying {url} after {outcome.reason}")
            break

        delay = policy.backoff(attempt)
        logger.debug(f"Fetch of {url} failed ({outcome.reason}), retry {attempt}/{policy.max_retries} in {delay:.2f}s")
        try:
            await sleep(delay)
        except CancellationRequested:
            return FetchFailure(url=url, kind=FailureKind.CANCELLED, attempts=attempt)

    logger.warning(f"Giving up on {url} after {outcome.attempts} attempts: {outcome.reason}")
    return outcome
