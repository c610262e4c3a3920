"""Bulk crawl result models."""

from pydantic import BaseModel


class PageResult(BaseModel):
    """Outcome of crawling a single URL."""

    url: str
    success: bool
    text: str | None = None
    error: str | None = None


class CrawlResult(BaseModel):
    """Per-URL outcomes plus an aggregate flag that is true only if every URL succeeded."""

    success: bool
    results: list[PageResult]

    @classmethod
    def from_pages(cls, pages: list[PageResult]) -> "CrawlResult":
        return cls(success=all(page.success for page in pages), results=pages)

    def to_payload(self) -> dict:
        """Tool payload shape: failures carry ``error``, successes carry ``text``."""
        return self.model_dump(exclude_none=True)
