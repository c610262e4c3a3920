"""Conversation message and part models.

A message is an ordered list of parts. Parts are either plain text or a record of
one tool invocation, whose state only ever moves forward:
pending -> called -> completed.
"""

from enum import StrEnum
from typing import Annotated, Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, ConfigDict, Field, model_validator

cuid = cuid_wrapper()


class ToolInvocationState(StrEnum):
    """Lifecycle of a tool invocation part."""

    PENDING = "pending"
    CALLED = "called"
    COMPLETED = "completed"


_STATE_ORDER = {
    ToolInvocationState.PENDING: 0,
    ToolInvocationState.CALLED: 1,
    ToolInvocationState.COMPLETED: 2,
}


class TextPart(BaseModel):
    """Text content produced by the user or the assistant."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolInvocationPart(BaseModel):
    """Structured record of one tool call, its arguments, state and outcome."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    state: ToolInvocationState = ToolInvocationState.PENDING
    step: int = 0
    result: Any = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        """Whether the invocation completed with an error payload."""
        return self.error is not None

    def advance(
        self,
        state: ToolInvocationState,
        *,
        result: Any = None,
        error: str | None = None,
    ) -> "ToolInvocationPart":
        """Return a copy of this part moved forward to ``state``.

        Args:
            state: Target state, strictly later than the current one
            result: Result payload, only allowed when completing
            error: Error payload, only allowed when completing

        Raises:
            ValueError: If the transition would not move forward, or a payload is
                attached to a non-terminal state
        """
        if _STATE_ORDER[state] <= _STATE_ORDER[self.state]:
            raise ValueError(f"Tool invocation {self.tool_call_id} cannot move from {self.state} to {state}")

        if state is not ToolInvocationState.COMPLETED and (result is not None or error is not None):
            raise ValueError("Only completed tool invocations carry a result or an error")

        return self.model_copy(update={"state": state, "result": result, "error": error})


Part = Annotated[TextPart | ToolInvocationPart, Field(discriminator="type")]


class Message(BaseModel):
    """A message in a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=cuid)
    role: Literal["user", "assistant", "tool"]
    parts: list[Part] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _content_to_parts(cls, data: Any) -> Any:
        # Accept the shorthand {"role": ..., "content": "..."} used by simple clients
        if isinstance(data, dict) and "content" in data and "parts" not in data:
            data = dict(data)
            content = data.pop("content")
            data["parts"] = [{"type": "text", "text": content}] if content else []
        return data

    @classmethod
    def user(cls, text: str) -> "Message":
        """Create a user message holding a single text part."""
        return cls(role="user", parts=[TextPart(text=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_invocations(self) -> list[ToolInvocationPart]:
        """All tool invocation parts, in order."""
        return [part for part in self.parts if isinstance(part, ToolInvocationPart)]
