"""robots.txt policy, resolved once per host for the duration of one crawl."""

import asyncio
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

import httpx

from deepsearch.agent.budget import Budget
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)


class RobotsPolicy:
    """Caches parsed robots.txt files per origin for a single crawl."""

    def __init__(self, client: httpx.AsyncClient, user_agent: str, timeout: float):
        self.client = client
        self.user_agent = user_agent
        self.timeout = timeout
        self._parsers: dict[str, RobotFileParser | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def allowed(self, url: str, budget: Budget | None = None) -> bool:
        """Whether ``url`` may be fetched. Missing or unreadable robots.txt allows everything."""
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            return True

        origin = f"{parts.scheme}://{parts.netloc}"
        lock = self._locks.setdefault(origin, asyncio.Lock())
        async with lock:
            if origin not in self._parsers:
                self._parsers[origin] = await self._load(origin, budget)

        parser = self._parsers[origin]
        return parser is None or parser.can_fetch(self.user_agent, url)

    async def _load(self, origin: str, budget: Budget | None) -> RobotFileParser | None:
        # Single attempt: robots.txt is advisory and must not hold up the crawl
        request = self.client.get(f"{origin}/robots.txt", timeout=self.timeout)
        try:
            response = await (budget.guard(request) if budget else request)
        except httpx.HTTPError as e:
            logger.debug(f"robots.txt unavailable for {origin}: {e!r}")
            return None

        if response.status_code >= 400:
            return None

        parser = RobotFileParser()
        parser.parse(response.text.splitlines())
        return parser
