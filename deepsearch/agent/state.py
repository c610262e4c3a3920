"""State definitions for the LangGraph turn flow."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from deepsearch.agent.budget import Budget
from deepsearch.agent.tracing import NoopTracer, Tracer
from deepsearch.models.messages import Message
from deepsearch.models.turn import TurnPhase

if TYPE_CHECKING:
    from deepsearch.services.llm import LLMService
    from deepsearch.tools.registry import ToolRegistry


class TurnState(BaseModel):
    """State passed through every node of the turn graph.

    ``messages`` is the full conversation: the caller's messages followed by one
    assistant message per step generated so far.
    """

    messages: list[Message]
    max_steps: int = Field(..., ge=1)

    # Control flow
    step: int = 0
    phase: TurnPhase = TurnPhase.GENERATING
    budget_expired: bool = False

    # Token usage tracking
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class TurnDependencies:
    """Collaborators the nodes need, passed through ``config["configurable"]["turn"]``."""

    llm: "LLMService"
    registry: "ToolRegistry"
    budget: Budget
    tracer: Tracer = field(default_factory=NoopTracer)
