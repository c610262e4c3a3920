"""Serper web-search client."""

from typing import Any

import httpx

from deepsearch.agent.budget import Budget
from deepsearch.config import SearchConfig
from deepsearch.errors import ProviderError
from deepsearch.models.search import SearchResult
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDER = "serper"


class SerperClient:
    """Single-attempt Google search through serper.dev."""

    def __init__(self, config: SearchConfig | None = None, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize the search client.

        Args:
            config: Search configuration; ``api_key`` is required
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.config = config or SearchConfig()
        if not self.config.api_key:
            raise ValueError("SERPER_API_KEY environment variable is required")
        self.transport = transport

    async def search(self, query: str, count: int = 10, budget: Budget | None = None) -> list[SearchResult]:
        """Run one search and normalize the organic results.

        Args:
            query: Search query
            count: Number of results to request
            budget: Turn budget carrying the cancellation signal

        Returns:
            Normalized search results, at most ``count``

        Raises:
            ProviderError: On transport errors, non-2xx responses or malformed payloads
            CancellationRequested: If the budget is cancelled mid-request
        """
        logger.info(f"Searching for {query!r} ({count} results)")
        request = self._post(query, count)
        payload = await (budget.guard(request) if budget else request)

        organic = payload.get("organic") or []
        if not isinstance(organic, list):
            raise ProviderError("Malformed response: 'organic' is not a list", provider=PROVIDER)

        results = [self._to_result(item) for item in organic if isinstance(item, dict) and item.get("link")]
        logger.debug(f"Search for {query!r} returned {len(results)} results")
        return results[:count]

    async def _post(self, query: str, count: int) -> dict[str, Any]:
        async with httpx.AsyncClient(transport=self.transport, timeout=self.config.timeout) as client:
            try:
                response = await client.post(
                    self.config.base_url,
                    json={"q": query, "num": count},
                    headers={"X-API-KEY": self.config.api_key or "", "Content-Type": "application/json"},
                )
            except httpx.HTTPError as e:
                raise ProviderError(f"Request failed: {e!r}", provider=PROVIDER) from e

        if not response.is_success:
            raise ProviderError(response.text[:200] or response.reason_phrase, PROVIDER, response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError("Response was not valid JSON", provider=PROVIDER) from e

        if not isinstance(payload, dict):
            raise ProviderError("Malformed response: expected an object", provider=PROVIDER)
        return payload

    @staticmethod
    def _to_result(item: dict[str, Any]) -> SearchResult:
        return SearchResult(
            title=item.get("title", ""),
            link=item["link"],
            snippet=item.get("snippet", ""),
            published_date=item.get("date"),
        )
