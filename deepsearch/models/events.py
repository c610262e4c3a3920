"""Stream events emitted to the caller while a turn runs."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from deepsearch.models.messages import Message
from deepsearch.models.turn import TurnPhase


class ChatIdAssigned(BaseModel):
    """A new chat was created for this turn."""

    type: Literal["chat-id-assigned"] = "chat-id-assigned"
    chat_id: str


class TextDelta(BaseModel):
    """A chunk of assistant text."""

    type: Literal["text-delta"] = "text-delta"
    step: int
    text: str


class ToolCallStarted(BaseModel):
    """A tool call requested by a step began executing."""

    type: Literal["tool-call-started"] = "tool-call-started"
    step: int
    tool_call_id: str
    tool_name: str
    args: dict[str, Any]


class ToolCallResult(BaseModel):
    """A tool call resolved, successfully or not."""

    type: Literal["tool-call-result"] = "tool-call-result"
    step: int
    tool_call_id: str
    tool_name: str
    result: Any = None
    error: str | None = None


class TurnFinished(BaseModel):
    """The turn ended with an answer."""

    type: Literal["turn-finished"] = "turn-finished"
    phase: TurnPhase
    steps: int
    messages: list[Message]
    input_tokens: int = 0
    output_tokens: int = 0


class TurnErrored(BaseModel):
    """The turn failed; ``messages`` holds the conversation as it stood before the turn."""

    type: Literal["turn-errored"] = "turn-errored"
    phase: TurnPhase = TurnPhase.FAILED
    error: str
    messages: list[Message]


StreamEvent = Annotated[
    ChatIdAssigned | TextDelta | ToolCallStarted | ToolCallResult | TurnFinished | TurnErrored,
    Field(discriminator="type"),
]


def to_ndjson(event: BaseModel) -> str:
    """Serialize an event as one line of newline-delimited JSON."""
    return event.model_dump_json(exclude_none=True) + "\n"
