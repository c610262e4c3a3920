"""Turn phases and outcomes."""

from dataclasses import dataclass, field
from enum import StrEnum

from deepsearch.models.llm import LLMUsage
from deepsearch.models.messages import Message


class TurnPhase(StrEnum):
    """Phases of one orchestration-loop invocation."""

    GENERATING = "generating"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FORCED_ANSWER = "forced_answer"
    FAILED = "failed"


@dataclass
class TurnOutcome:
    """Final result of a turn, handed to persistence exactly once."""

    phase: TurnPhase
    messages: list[Message]
    steps: int
    error: str | None = None
    usage: LLMUsage = field(default_factory=LLMUsage)
