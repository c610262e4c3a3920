"""Base types and definitions for tools."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from deepsearch.models.llm import LLMToolDefinition


class ToolName(StrEnum):
    """The closed set of tools the assistant can call."""

    SEARCH_WEB = "searchWeb"
    SCRAPE_PAGES = "scrapePages"


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool available to the assistant."""

    name: ToolName
    description: str
    input_schema_class: type[BaseModel]

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_llm_definition(self) -> LLMToolDefinition:
        return LLMToolDefinition(name=self.name.value, description=self.description, input_schema=self.get_json_schema())
