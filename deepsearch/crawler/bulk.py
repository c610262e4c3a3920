"""Concurrent crawl of a bounded batch of URLs."""

import asyncio
from collections.abc import Sequence

import httpx

from deepsearch.agent.budget import Budget
from deepsearch.config import CrawlerConfig
from deepsearch.crawler.extract import ExtractionError, extract_readable_text, is_html
from deepsearch.crawler.fetch import FailureKind, FetchFailure, RetryPolicy, Sleep, fetch_with_retry
from deepsearch.crawler.robots import RobotsPolicy
from deepsearch.errors import CancellationRequested, ToolValidationError
from deepsearch.models.crawl import CrawlResult, PageResult
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)


class BulkCrawler:
    """Fetches and extracts readable text from many URLs with bounded concurrency."""

    def __init__(
        self,
        config: CrawlerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep | None = None,
    ):
        """Initialize the crawler.

        Args:
            config: Crawler configuration
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
            sleep: Optional override for backoff waits
        """
        self.config = config or CrawlerConfig()
        self.transport = transport
        self.sleep = sleep
        self.policy = RetryPolicy(
            max_retries=self.config.max_retries,
            base_delay=self.config.backoff_base,
            multiplier=self.config.backoff_multiplier,
            max_delay=self.config.backoff_max,
            jitter=self.config.jitter,
        )

    def validate_urls(self, urls: Sequence[str]) -> None:
        """Reject empty or oversized batches.

        Raises:
            ToolValidationError: If the batch size is outside 1..max_urls
        """
        if not urls:
            raise ToolValidationError("At least one URL is required", tool_name="scrapePages")
        if len(urls) > self.config.max_urls:
            raise ToolValidationError(
                f"Too many URLs: {len(urls)} > {self.config.max_urls}",
                tool_name="scrapePages",
            )

    async def crawl(self, urls: Sequence[str], budget: Budget | None = None) -> CrawlResult:
        """Crawl every URL and return one result per URL.

        Per-URL failures never raise; they are recorded in the result. The
        aggregate ``success`` flag is true only if every URL succeeded.

        Args:
            urls: URLs to crawl (duplicates allowed)
            budget: Turn budget carrying the cancellation signal

        Returns:
            Crawl result with exactly ``len(urls)`` page results

        Raises:
            ToolValidationError: If the batch size is invalid
            CancellationRequested: If the budget was cancelled during the crawl
        """
        self.validate_urls(urls)
        logger.info(f"Crawling {len(urls)} URLs with concurrency {self.config.max_concurrency}")

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        async with httpx.AsyncClient(
            transport=self.transport,
            follow_redirects=True,
            headers={"User-Agent": self.config.user_agent},
        ) as client:
            robots = (
                RobotsPolicy(client, self.config.user_agent, self.config.request_timeout)
                if self.config.check_robots
                else None
            )

            async def crawl_one(url: str) -> PageResult:
                async with semaphore:
                    return await self._crawl_one(client, robots, url, budget)

            pages = await asyncio.gather(*(crawl_one(url) for url in urls))

        if budget:
            budget.raise_if_cancelled()

        result = CrawlResult.from_pages(list(pages))
        failed = sum(1 for page in pages if not page.success)
        logger.info(f"Crawl finished: {len(pages) - failed} succeeded, {failed} failed")
        return result

    async def _crawl_one(
        self,
        client: httpx.AsyncClient,
        robots: RobotsPolicy | None,
        url: str,
        budget: Budget | None,
    ) -> PageResult:
        if budget and budget.cancelled:
            return PageResult(url=url, success=False, error=FailureKind.CANCELLED.value)

        if robots is not None:
            try:
                if not await robots.allowed(url, budget):
                    return PageResult(url=url, success=False, error="blocked: disallowed by robots.txt")
            except CancellationRequested:
                return PageResult(url=url, success=False, error=FailureKind.CANCELLED.value)

        outcome = await fetch_with_retry(
            client,
            url,
            timeout=self.config.request_timeout,
            policy=self.policy,
            budget=budget,
            sleep=self.sleep,
        )
        if isinstance(outcome, FetchFailure):
            return PageResult(url=url, success=False, error=outcome.reason)

        if not is_html(outcome.content_type):
            content_type = outcome.content_type.split(";", 1)[0].strip() or "unknown"
            return PageResult(url=url, success=False, error=f"non-HTML content ({content_type})")

        if not outcome.body.strip():
            return PageResult(url=url, success=False, error="empty body")

        try:
            page = extract_readable_text(outcome.body, max_chars=self.config.max_page_chars)
        except ExtractionError as e:
            return PageResult(url=url, success=False, error=str(e))

        return PageResult(url=url, success=True, text=page.text)
