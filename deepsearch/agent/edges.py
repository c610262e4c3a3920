"""Edge logic and routing for the turn graph.

Routing reads only the turn state; nodes record everything routing needs.
"""

from typing import Literal

from deepsearch.agent.state import TurnState
from deepsearch.models.turn import TurnPhase
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)


def route_start(state: TurnState) -> Literal["generate", "forced_answer"]:
    """Route the first step.

    A single-step budget, or a budget that is already spent, goes straight to
    the forced answer.
    """
    if state.budget_expired or state.max_steps <= 1:
        return "forced_answer"
    return "generate"


def route_generate_output(state: TurnState) -> Literal["tools", "end"]:
    """Execute tools if the step requested any, otherwise the turn is done."""
    if state.phase is TurnPhase.EXECUTING_TOOLS:
        return "tools"
    return "end"


def route_tool_output(state: TurnState) -> Literal["generate", "forced_answer"]:
    """Start another regular step unless the deadline or the step budget is used up."""
    if state.budget_expired:
        logger.info(f"Turn deadline passed after step {state.step}, forcing an answer")
        return "forced_answer"

    if state.step + 1 >= state.max_steps:
        logger.info(f"Step budget of {state.max_steps} reached, forcing an answer")
        return "forced_answer"

    return "generate"
