"""Page scraping tool."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from deepsearch.agent.budget import Budget
from deepsearch.crawler import BulkCrawler
from deepsearch.tools.base import ToolDefinition, ToolName


class ScrapePagesCall(BaseModel):
    """Validated arguments of a scrapePages call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    urls: tuple[str, ...] = Field(
        ...,
        min_length=1,
        description="Absolute http(s) URLs of the pages to read",
        examples=[["https://example.com/article"]],
    )

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        urls = tuple(url.strip() for url in v)
        for url in urls:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"URL must start with http:// or https://: {url!r}")
        return urls


SCRAPE_PAGES = ToolDefinition(
    name=ToolName.SCRAPE_PAGES,
    description=(
        "Fetch web pages and return their readable text. Returns an aggregate success flag "
        "and one result per URL: either the page text or the reason it could not be read "
        "(for example http-status:403, timeout, or disallowed by robots.txt)."
    ),
    input_schema_class=ScrapePagesCall,
)


async def scrape_pages(call: ScrapePagesCall, crawler: BulkCrawler, budget: Budget | None = None) -> dict[str, Any]:
    """Execute a scrapePages call and return the tool payload."""
    result = await crawler.crawl(list(call.urls), budget)
    return result.to_payload()
