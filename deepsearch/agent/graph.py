"""Turn graph and the runner that streams one turn to the caller."""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, START, StateGraph

from deepsearch.agent.budget import Budget
from deepsearch.agent.edges import route_generate_output, route_start, route_tool_output
from deepsearch.agent.nodes import describe_error, forced_answer_node, generate_node, tools_node
from deepsearch.agent.state import TurnDependencies, TurnState
from deepsearch.agent.tracing import NoopTracer, Tracer
from deepsearch.config import AgentConfig, get_settings
from deepsearch.errors import CancellationRequested, ProviderError
from deepsearch.models.events import ChatIdAssigned, StreamEvent, TurnErrored, TurnFinished
from deepsearch.models.llm import LLMUsage
from deepsearch.models.messages import Message
from deepsearch.models.turn import TurnOutcome, TurnPhase
from deepsearch.services.llm import LLMService, get_llm_service
from deepsearch.tools.registry import ToolRegistry, get_tool_registry
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

OnFinish = Callable[[TurnOutcome], Awaitable[None]]


def create_turn_graph():
    """Create the turn graph.

    ``generate`` runs a regular step, ``tools`` executes the calls it requested
    and ``forced_answer`` issues the final tool-less step when the step budget or
    the deadline runs out.

    Returns:
        Compiled LangGraph workflow
    """
    logger.info("Creating turn graph")

    workflow = StateGraph(TurnState)

    workflow.add_node("generate", generate_node)
    workflow.add_node("tools", tools_node)
    workflow.add_node("forced_answer", forced_answer_node)

    workflow.add_conditional_edges(
        START,
        route_start,
        {
            "generate": "generate",
            "forced_answer": "forced_answer",
        },
    )

    workflow.add_conditional_edges(
        "generate",
        route_generate_output,
        {
            "tools": "tools",
            "end": END,
        },
    )

    workflow.add_conditional_edges(
        "tools",
        route_tool_output,
        {
            "generate": "generate",
            "forced_answer": "forced_answer",
        },
    )

    workflow.add_edge("forced_answer", END)

    return workflow.compile()


@dataclass
class TurnContext:
    """Per-turn context handed to the runner by the caller."""

    chat_id: str
    user_id: str
    budget: Budget
    is_new_chat: bool = False
    tracer: Tracer = field(default_factory=NoopTracer)


class TurnRunner:
    """Runs one turn of the orchestration loop as a stream of events."""

    def __init__(
        self,
        llm: LLMService | None = None,
        registry: ToolRegistry | None = None,
        config: AgentConfig | None = None,
    ):
        """Initialize the runner.

        Args:
            llm: LLM service (defaults to global instance)
            registry: Tool registry (defaults to global instance)
            config: Agent configuration (defaults to settings)
        """
        self.llm = llm or get_llm_service()
        self.registry = registry or get_tool_registry()
        self.config = config or get_settings().agent
        self.graph = create_turn_graph()

    async def run_turn(
        self,
        messages: list[Message],
        context: TurnContext,
        on_finish: OnFinish | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn and stream its events.

        ``on_finish`` is awaited exactly once with the outcome, before the
        terminal event is yielded, or when the consumer stops iterating early.
        Closing the stream early cancels the budget.

        Args:
            messages: Full prior conversation, ending with the new user message
            context: Chat identity, budget and tracer for this turn
            on_finish: Persistence callback for the final message list

        Yields:
            Stream events, ending with ``turn-finished`` or ``turn-errored``
        """
        logger.info(f"Starting turn for chat {context.chat_id} with {len(messages)} messages")
        prior = list(messages)
        finished = False

        async def finish(outcome: TurnOutcome) -> None:
            nonlocal finished
            if finished:
                return
            finished = True
            if on_finish is not None:
                await on_finish(outcome)

        try:
            if context.is_new_chat:
                yield ChatIdAssigned(chat_id=context.chat_id)

            state = TurnState(messages=prior, max_steps=self.config.max_steps, budget_expired=context.budget.expired)
            final_state = state
            error: BaseException | None = None

            graph_config: dict[str, Any] = {
                "configurable": {
                    "thread_id": context.chat_id,
                    "turn": TurnDependencies(
                        llm=self.llm,
                        registry=self.registry,
                        budget=context.budget,
                        tracer=context.tracer,
                    ),
                },
                "recursion_limit": 2 * self.config.max_steps + 5,
            }

            try:
                with context.tracer.span("turn", chat_id=context.chat_id, user_id=context.user_id):
                    async with aclosing(
                        self.graph.astream(state.model_dump(), graph_config, stream_mode=["custom", "values"])
                    ) as stream:
                        async for mode, chunk in stream:
                            if mode == "custom":
                                yield chunk
                            else:
                                final_state = chunk if isinstance(chunk, TurnState) else TurnState.model_validate(chunk)
            except CancellationRequested as e:
                logger.info(f"Turn for chat {context.chat_id} cancelled: {e.reason}")
                error = e
            except ProviderError as e:
                logger.error(f"Provider failed during turn for chat {context.chat_id}: {e}")
                error = e
            except Exception as e:
                logger.error(f"Turn for chat {context.chat_id} failed: {e}", exc_info=True)
                error = e

            usage = LLMUsage(
                input_tokens=final_state.input_tokens,
                output_tokens=final_state.output_tokens,
                total_tokens=final_state.input_tokens + final_state.output_tokens,
            )
            if error is None:
                outcome = TurnOutcome(
                    phase=final_state.phase, messages=final_state.messages, steps=final_state.step, usage=usage
                )
            else:
                # Partial assistant output is discarded for failed turns
                outcome = TurnOutcome(
                    phase=TurnPhase.FAILED,
                    messages=prior,
                    steps=final_state.step,
                    error=describe_error(error),
                    usage=usage,
                )

            try:
                await finish(outcome)
            except Exception as e:
                logger.error(f"Persisting turn for chat {context.chat_id} failed: {e}", exc_info=True)
                yield TurnErrored(error=describe_error(e), messages=outcome.messages)
                return

            logger.info(f"Turn for chat {context.chat_id} ended in {outcome.phase} after {outcome.steps} steps")
            if outcome.phase is TurnPhase.FAILED:
                yield TurnErrored(error=outcome.error or "unknown error", messages=outcome.messages)
            else:
                yield TurnFinished(
                    phase=outcome.phase,
                    steps=outcome.steps,
                    messages=outcome.messages,
                    input_tokens=usage.input_tokens,
                    output_tokens=usage.output_tokens,
                )
        finally:
            if not finished:
                context.budget.cancel("stream closed by consumer")
                try:
                    await finish(
                        TurnOutcome(phase=TurnPhase.FAILED, messages=prior, steps=0, error="stream closed by consumer")
                    )
                except Exception as e:
                    logger.error(f"Persisting abandoned turn for chat {context.chat_id} failed: {e}", exc_info=True)
