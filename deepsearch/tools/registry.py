"""Tools registry: validation and dispatch over the closed set of tools."""

from typing import Any, assert_never

from pydantic import ValidationError

from deepsearch.agent.budget import Budget
from deepsearch.clients.serper import SerperClient
from deepsearch.config import get_settings
from deepsearch.crawler import BulkCrawler
from deepsearch.errors import ToolValidationError
from deepsearch.models.llm import LLMToolDefinition
from deepsearch.tools.base import ToolDefinition, ToolName
from deepsearch.tools.scrape_pages import SCRAPE_PAGES, ScrapePagesCall, scrape_pages
from deepsearch.tools.search_web import SEARCH_WEB, SearchWebCall, search_web
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

ToolCall = SearchWebCall | ScrapePagesCall


class ToolRegistry:
    """Registry that validates tool calls and dispatches them to their implementation."""

    def __init__(
        self,
        search_client: SerperClient | None = None,
        crawler: BulkCrawler | None = None,
        default_search_count: int | None = None,
    ):
        """Initialize the registry.

        Args:
            search_client: Search client (created from settings on first search if omitted)
            crawler: Bulk crawler (created from settings if omitted)
            default_search_count: ``count`` used when a searchWeb call omits it
        """
        settings = get_settings()
        self._search_client = search_client
        self.crawler = crawler or BulkCrawler(settings.crawler)
        self.default_search_count = default_search_count or settings.agent.search_result_count
        self._tools: dict[ToolName, ToolDefinition] = {tool.name: tool for tool in (SEARCH_WEB, SCRAPE_PAGES)}

    @property
    def search_client(self) -> SerperClient:
        if self._search_client is None:
            self._search_client = SerperClient(get_settings().search)
        return self._search_client

    def llm_tool_definitions(self) -> list[LLMToolDefinition]:
        """Tool definitions in the shape the LLM service expects."""
        definitions = [tool.to_llm_definition() for tool in self._tools.values()]
        for definition in definitions:
            if definition.name == ToolName.SCRAPE_PAGES:
                definition.input_schema["properties"]["urls"]["maxItems"] = self.crawler.config.max_urls
        return definitions

    def parse_call(self, name: str, raw_input: dict[str, Any]) -> ToolCall:
        """Validate a tool call requested by the model.

        Args:
            name: Tool name as sent by the model
            raw_input: Raw tool arguments

        Returns:
            Typed, frozen call variant

        Raises:
            ToolValidationError: If the tool is unknown or the arguments are invalid
        """
        try:
            tool_name = ToolName(name)
        except ValueError as e:
            raise ToolValidationError(f"Unknown tool: {name}", tool_name=name) from e

        if not isinstance(raw_input, dict):
            raise ToolValidationError(f"Arguments for {name} must be an object", tool_name=name)

        if tool_name is ToolName.SEARCH_WEB and "count" not in raw_input:
            raw_input = {**raw_input, "count": self.default_search_count}

        try:
            call = self._tools[tool_name].parse_input(raw_input)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(loc) for loc in error['loc']) or 'input'}: {error['msg']}" for error in e.errors()
            )
            raise ToolValidationError(f"Invalid arguments for {name}: {errors}", tool_name=name) from e

        if isinstance(call, ScrapePagesCall):
            self.crawler.validate_urls(call.urls)
        return call  # type: ignore[return-value]

    async def execute(self, call: ToolCall, budget: Budget | None = None) -> Any:
        """Run a validated tool call and return its JSON-serializable payload."""
        match call:
            case SearchWebCall():
                logger.debug(f"Dispatching searchWeb: {call.query!r}")
                return await search_web(call, self.search_client, budget)
            case ScrapePagesCall():
                logger.debug(f"Dispatching scrapePages for {len(call.urls)} URLs")
                return await scrape_pages(call, self.crawler, budget)
            case _:
                assert_never(call)


_tool_registry: ToolRegistry | None = None


def get_tool_registry() -> ToolRegistry:
    """Get or create tools registry instance."""
    global _tool_registry
    if _tool_registry is None:
        _tool_registry = ToolRegistry()
    return _tool_registry
