"""Deep search chat assistant: an LLM agent loop with web search and page scraping."""

__version__ = "0.1.0"
