"""Shared test helpers: a scripted LLM and offline tool collaborators."""

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from deepsearch.agent.budget import Budget
from deepsearch.clients.serper import SerperClient
from deepsearch.config import CrawlerConfig, SearchConfig
from deepsearch.crawler import BulkCrawler
from deepsearch.models.llm import LLMResponse, LLMToolDefinition, LLMUsage, TextBlock, ToolUseBlock
from deepsearch.models.messages import Message
from deepsearch.tools.registry import ToolRegistry

ARTICLE_HTML = """
<html>
  <head><title>Example article</title></head>
  <body>
    <nav>Home | About | Contact</nav>
    <article>
      <h1>Example article</h1>
      <p>The quick brown fox jumps over the lazy dog. This sentence is repeated to make the article long enough
      to be treated as the main content of the page by the extractor, which prefers article bodies.</p>
      <p>A second paragraph adds more readable text so the page comfortably passes the minimum length.</p>
    </article>
    <footer>Copyright Example Inc.</footer>
  </body>
</html>
"""


def text_response(text: str) -> LLMResponse:
    """A step that answers with text only."""
    return LLMResponse(
        content=[TextBlock(text=text)],
        stop_reason="end_turn",
        usage=LLMUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        model="fake-model",
    )


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> LLMResponse:
    """A step that requests tool calls given as ``(id, name, input)`` tuples."""
    content: list = [TextBlock(text=text)] if text else []
    content.extend(ToolUseBlock(id=call_id, name=name, input=args) for call_id, name, args in calls)
    return LLMResponse(
        content=content,
        stop_reason="tool_use",
        usage=LLMUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        model="fake-model",
    )


class FakeLLM:
    """Scripted stand-in for ``LLMService``.

    Each script entry is an ``LLMResponse`` to return, an exception to raise, or
    a callable taking the call record and returning one of those.
    """

    def __init__(self, script: list[Any]):
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def generate_step(
        self,
        messages: list[Message],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
        on_text: Callable[[str], None] | None = None,
        budget: Budget | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        call = {"messages": list(messages), "system_prompt": system_prompt, "tools": tools, "budget": budget}
        self.calls.append(call)
        if not self.script:
            raise AssertionError("FakeLLM script exhausted")

        entry = self.script.pop(0)
        if callable(entry) and not isinstance(entry, LLMResponse):
            entry = entry(call)
        if isinstance(entry, BaseException):
            raise entry

        if on_text is not None and entry.text:
            # Stream in two chunks to exercise incremental delivery
            middle = len(entry.text) // 2
            for chunk in (entry.text[:middle], entry.text[middle:]):
                if chunk:
                    on_text(chunk)
        return entry


async def no_sleep(seconds: float) -> None:
    return None


def serper_handler(results: list[dict[str, Any]] | None = None) -> Callable[[httpx.Request], httpx.Response]:
    """MockTransport handler answering every search with ``results``."""
    organic = (
        results
        if results is not None
        else [
            {"title": "Example", "link": "https://ok.example/a", "snippet": "An example page", "date": "2 days ago"},
            {"title": "Other", "link": "https://ok.example/b", "snippet": "Another page"},
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"organic": organic})

    return handler


def pages_handler(request: httpx.Request) -> httpx.Response:
    """MockTransport handler serving an article everywhere except 403 on blocked.example."""
    if request.url.host == "blocked.example":
        return httpx.Response(403, text="Forbidden")
    if request.url.path == "/robots.txt":
        return httpx.Response(404)
    return httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html; charset=utf-8"})


def make_registry(
    search_handler: Callable | None = None,
    page_handler: Callable | None = None,
    crawler_config: CrawlerConfig | None = None,
) -> ToolRegistry:
    """Tool registry wired to mock transports."""
    search_client = SerperClient(
        SearchConfig(api_key="test-key"),
        transport=httpx.MockTransport(search_handler or serper_handler()),
    )
    crawler = BulkCrawler(
        crawler_config or CrawlerConfig(check_robots=False, jitter=False),
        transport=httpx.MockTransport(page_handler or pages_handler),
        sleep=no_sleep,
    )
    return ToolRegistry(search_client=search_client, crawler=crawler, default_search_count=10)


@pytest.fixture
def registry() -> ToolRegistry:
    return make_registry()
