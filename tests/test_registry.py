"""Tests for the tool registry and the search client behind it."""

import json

import httpx
import pytest

from deepsearch.clients.serper import SerperClient
from deepsearch.config import CrawlerConfig, SearchConfig
from deepsearch.errors import ProviderError, ToolValidationError
from deepsearch.tools import ScrapePagesCall, SearchWebCall, ToolName

from conftest import make_registry, serper_handler


class TestParseCall:
    """Tests for validating tool calls before execution."""

    def test_search_call_defaults_count(self, registry):
        """Test that a searchWeb call without count uses the default."""
        call = registry.parse_call("searchWeb", {"query": "python 3.13 release"})

        assert isinstance(call, SearchWebCall)
        assert call.query == "python 3.13 release"
        assert call.count == 10

    def test_scrape_call_parses_urls(self, registry):
        """Test that a scrapePages call becomes a frozen call variant."""
        call = registry.parse_call("scrapePages", {"urls": ["https://ok.example/a"]})

        assert isinstance(call, ScrapePagesCall)
        assert call.urls == ("https://ok.example/a",)

    def test_unknown_tool_rejected(self, registry):
        """Test that unknown tool names raise ToolValidationError."""
        with pytest.raises(ToolValidationError, match="Unknown tool: deleteEverything"):
            registry.parse_call("deleteEverything", {})

    @pytest.mark.parametrize(
        ("name", "raw"),
        [
            ("searchWeb", {}),
            ("searchWeb", {"query": "   "}),
            ("searchWeb", {"query": "x", "count": 0}),
            ("searchWeb", {"query": "x", "count": 21}),
            ("searchWeb", {"query": "x", "extra": True}),
            ("scrapePages", {"urls": []}),
            ("scrapePages", {"urls": ["https://ok.example/"] * 21}),
            ("scrapePages", {"urls": ["not a url"]}),
        ],
    )
    def test_invalid_arguments_rejected(self, registry, name, raw):
        """Test that schema violations are rejected before execution."""
        with pytest.raises(ToolValidationError) as exc_info:
            registry.parse_call(name, raw)

        assert exc_info.value.tool_name == name

    def test_llm_tool_definitions(self, registry):
        """Test that both tools are exposed with JSON schemas."""
        definitions = {tool.name: tool for tool in registry.llm_tool_definitions()}

        assert set(definitions) == {ToolName.SEARCH_WEB.value, ToolName.SCRAPE_PAGES.value}
        assert "query" in definitions["searchWeb"].input_schema["properties"]
        assert "urls" in definitions["scrapePages"].input_schema["properties"]

    def test_scrape_batch_limit_follows_crawler_config(self):
        """Test that the URL cap comes from the crawler configuration, not a fixed number."""
        registry = make_registry(crawler_config=CrawlerConfig(max_urls=3, check_robots=False, jitter=False))
        urls = [f"https://ok.example/{i}" for i in range(4)]

        with pytest.raises(ToolValidationError) as exc_info:
            registry.parse_call("scrapePages", {"urls": urls})

        assert exc_info.value.tool_name == "scrapePages"
        assert registry.parse_call("scrapePages", {"urls": urls[:3]}).urls == tuple(urls[:3])

    def test_larger_configured_batch_accepted(self):
        """Test that raising the configured cap allows batches beyond the default."""
        registry = make_registry(crawler_config=CrawlerConfig(max_urls=30, check_robots=False, jitter=False))
        urls = [f"https://ok.example/{i}" for i in range(25)]

        call = registry.parse_call("scrapePages", {"urls": urls})

        assert len(call.urls) == 25
        schema = {tool.name: tool for tool in registry.llm_tool_definitions()}["scrapePages"].input_schema
        assert schema["properties"]["urls"]["maxItems"] == 30


class TestExecute:
    """Tests for dispatching validated calls."""

    @pytest.mark.asyncio
    async def test_search_returns_camel_case_payload(self, registry):
        """Test that search results use camelCase keys on the wire."""
        result = await registry.execute(SearchWebCall(query="example", count=5))

        assert result[0] == {
            "title": "Example",
            "link": "https://ok.example/a",
            "snippet": "An example page",
            "publishedDate": "2 days ago",
        }
        assert "publishedDate" not in result[1]

    @pytest.mark.asyncio
    async def test_scrape_returns_crawl_payload(self, registry):
        """Test that scrapePages returns the aggregate flag and per-URL results."""
        result = await registry.execute(ScrapePagesCall(urls=("https://ok.example/a", "https://blocked.example/b")))

        assert result["success"] is False
        assert len(result["results"]) == 2


class TestSerperClient:
    """Tests for the Serper search client."""

    def test_requires_api_key(self):
        """Test that a missing API key is rejected."""
        with pytest.raises(ValueError, match="SERPER_API_KEY"):
            SerperClient(SearchConfig(api_key=None))

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test that the query, count and API key are sent."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"organic": []})

        client = SerperClient(SearchConfig(api_key="secret"), transport=httpx.MockTransport(handler))
        results = await client.search("weather", count=3)

        assert results == []
        assert seen[0].headers["X-API-KEY"] == "secret"
        assert json.loads(seen[0].content) == {"q": "weather", "num": 3}

    @pytest.mark.asyncio
    async def test_results_truncated_to_count(self):
        """Test that extra organic results are dropped."""
        organic = [{"title": f"r{i}", "link": f"https://ok.example/{i}"} for i in range(5)]
        client = SerperClient(SearchConfig(api_key="k"), transport=httpx.MockTransport(serper_handler(organic)))

        results = await client.search("q", count=2)

        assert [result.link for result in results] == ["https://ok.example/0", "https://ok.example/1"]

    @pytest.mark.asyncio
    async def test_upstream_error_raises_provider_error(self):
        """Test that a non-2xx response raises ProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        client = SerperClient(SearchConfig(api_key="k"), transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderError) as exc_info:
            await client.search("q")

        assert exc_info.value.status_code == 500
        assert exc_info.value.provider == "serper"

    @pytest.mark.asyncio
    async def test_malformed_payload_raises_provider_error(self):
        """Test that a payload without a list of results raises ProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"organic": "nope"})

        registry = make_registry(search_handler=handler)
        with pytest.raises(ProviderError, match="Malformed"):
            await registry.execute(SearchWebCall(query="q"))
