"""Bulk web crawling: fetch with retry, robots policy and readable-text extraction."""

from deepsearch.crawler.bulk import BulkCrawler
from deepsearch.crawler.fetch import FailureKind, FetchFailure, FetchSuccess, RetryPolicy, fetch_with_retry

__all__ = ["BulkCrawler", "FailureKind", "FetchFailure", "FetchSuccess", "RetryPolicy", "fetch_with_retry"]
