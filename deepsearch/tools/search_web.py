"""Web search tool."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from deepsearch.agent.budget import Budget
from deepsearch.clients.serper import SerperClient
from deepsearch.tools.base import ToolDefinition, ToolName


class SearchWebCall(BaseModel):
    """Validated arguments of a searchWeb call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    query: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="The search query",
        examples=["latest python release", "who won the 2024 tour de france"],
    )
    count: int = Field(10, ge=1, le=20, description="Number of results to return")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        query = v.strip()
        if not query:
            raise ValueError("Query cannot be blank")
        return query


SEARCH_WEB = ToolDefinition(
    name=ToolName.SEARCH_WEB,
    description=(
        "Search the web for up-to-date information. Returns a list of results, each with a title, "
        "link, snippet and, when known, publishedDate. Use scrapePages on the most relevant links "
        "to read the full content before answering."
    ),
    input_schema_class=SearchWebCall,
)


async def search_web(call: SearchWebCall, client: SerperClient, budget: Budget | None = None) -> list[dict[str, Any]]:
    """Execute a searchWeb call and return the tool payload."""
    results = await client.search(call.query, call.count, budget)
    return [result.to_payload() for result in results]
