"""API endpoints for the deep search service."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse

from deepsearch import __version__
from deepsearch.errors import ChatOwnershipError, RateLimitExceeded
from deepsearch.models.chat import Chat, ChatRequest, ChatSummary, HealthResponse, RateLimitErrorResponse
from deepsearch.models.events import StreamEvent, to_ndjson
from deepsearch.services.chat import ChatService, get_chat_service
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Authenticated user id, taken from the ``X-User-Id`` header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


UserId = Annotated[str, Depends(get_user_id)]
ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


async def _ndjson(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield to_ndjson(event)


@router.post("/chat", tags=["Chat"], response_model=None)
async def handle_chat(request: ChatRequest, user_id: UserId, chat_service: ChatServiceDep) -> StreamingResponse | JSONResponse:
    """Run one turn and stream its events as newline-delimited JSON.

    The stream ends with a ``turn-finished`` or ``turn-errored`` event carrying
    the full message list that was persisted.
    """
    logger.info(f"Chat turn requested by {user_id} for chat {request.chat_id} ({len(request.messages)} messages)")

    try:
        events = await chat_service.start_turn(request, user_id)
    except RateLimitExceeded as e:
        decision = e.decision
        body = RateLimitErrorResponse(
            message=f"You have used all {decision.limit} requests for this period",
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=decision.reset_at,
        )
        return JSONResponse(
            status_code=429,
            content=body.model_dump(mode="json"),
            headers={
                "X-RateLimit-Limit": str(decision.limit),
                "X-RateLimit-Remaining": str(decision.remaining),
                "X-RateLimit-Reset": decision.reset_at.isoformat(),
            },
        )
    except ChatOwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e

    return StreamingResponse(_ndjson(events), media_type=NDJSON_MEDIA_TYPE)


@router.get("/chats", response_model=list[ChatSummary], tags=["Chat"])
async def list_chats(user_id: UserId, chat_service: ChatServiceDep) -> list[ChatSummary]:
    """List the caller's chats, most recently updated first."""
    return await chat_service.list_chats(user_id)


@router.get("/chats/{chat_id}", response_model=Chat, tags=["Chat"])
async def get_chat(chat_id: str, user_id: UserId, chat_service: ChatServiceDep) -> Chat:
    """Get one of the caller's chats with all of its messages."""
    chat = await chat_service.get_chat(chat_id, user_id)
    if chat is None:
        raise HTTPException(status_code=404, detail=f"Chat not found: {chat_id}")
    return chat


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
