"""Chat request, response and storage models."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from deepsearch.models.messages import Message, cuid


class ChatRequest(BaseModel):
    """Request body for running one turn."""

    messages: list[Message] = Field(..., min_length=1)
    chat_id: str = Field(default_factory=cuid)
    is_new_chat: bool = False


class Chat(BaseModel):
    """A stored conversation."""

    id: str
    user_id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ChatSummary(BaseModel):
    """A stored conversation without its messages."""

    id: str
    title: str
    created_at: datetime
    updated_at: datetime


class RateLimitErrorResponse(BaseModel):
    """Body returned with HTTP 429."""

    error: str = "Rate limit exceeded"
    message: str
    limit: int
    remaining: int
    reset_at: datetime


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
