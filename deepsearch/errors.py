"""Exception taxonomy for the deep search service.

Fetch-level network and timeout problems are not exceptions: they are returned as
``FetchFailure`` values by the crawler. Running out of time or steps is not an
exception either: it is the ``FORCED_ANSWER`` phase of a turn.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deepsearch.services.rate_limit import RateLimitDecision


class DeepSearchError(Exception):
    """Base class for all service errors."""


class ToolValidationError(DeepSearchError):
    """Tool arguments or a tool name were rejected before execution."""

    def __init__(self, message: str, tool_name: str | None = None):
        super().__init__(message)
        self.tool_name = tool_name


class ProviderError(DeepSearchError):
    """An upstream provider (search or LLM) failed."""

    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{self.provider} error ({self.status_code}): {base}"
        return f"{self.provider} error: {base}"


class CancellationRequested(DeepSearchError):
    """The turn was cancelled by the caller."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason


class ChatOwnershipError(DeepSearchError):
    """A chat exists but belongs to a different user."""


class RateLimitExceeded(DeepSearchError):
    """The caller has used up its request allowance."""

    def __init__(self, decision: "RateLimitDecision"):
        super().__init__(f"Rate limit exceeded: {decision.limit} requests allowed")
        self.decision = decision
