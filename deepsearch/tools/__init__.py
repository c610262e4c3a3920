"""Tools for the deep search assistant."""

from deepsearch.tools.base import ToolDefinition, ToolName
from deepsearch.tools.registry import ToolCall, ToolRegistry, get_tool_registry
from deepsearch.tools.scrape_pages import ScrapePagesCall
from deepsearch.tools.search_web import SearchWebCall

__all__ = [
    "ScrapePagesCall",
    "SearchWebCall",
    "ToolCall",
    "ToolDefinition",
    "ToolName",
    "ToolRegistry",
    "get_tool_registry",
]
