"""Normalized web-search result."""

from pydantic import BaseModel, ConfigDict, Field


class SearchResult(BaseModel):
    """One organic search result."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    link: str
    snippet: str = ""
    published_date: str | None = Field(default=None, alias="publishedDate")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
