"""Node implementations for the turn graph."""

import asyncio
from typing import Any

from langchain_core.runnables import RunnableConfig
from langgraph.types import StreamWriter

from deepsearch.agent.prompts import get_forced_answer_prompt, get_system_prompt
from deepsearch.agent.state import TurnDependencies, TurnState
from deepsearch.errors import CancellationRequested, ToolValidationError
from deepsearch.models.events import TextDelta, ToolCallResult, ToolCallStarted
from deepsearch.models.llm import LLMResponse
from deepsearch.models.messages import Message, Part, TextPart, ToolInvocationPart, ToolInvocationState
from deepsearch.models.turn import TurnPhase
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

DEADLINE_EXCEEDED = "DeadlineExceeded: turn deadline passed before the tool could run"
EMPTY_ANSWER = "I could not put together an answer from the research so far."


def _dependencies(config: RunnableConfig) -> TurnDependencies:
    return config["configurable"]["turn"]


def describe_error(error: BaseException) -> str:
    """Render an exception as the error payload shown to the model."""
    return f"{type(error).__name__}: {error}"


def _usage_updates(state: TurnState, response: LLMResponse) -> dict[str, int]:
    if response.usage is None:
        return {}
    return {
        "input_tokens": state.input_tokens + response.usage.input_tokens,
        "output_tokens": state.output_tokens + response.usage.output_tokens,
    }


async def generate_node(state: TurnState, config: RunnableConfig, writer: StreamWriter) -> dict[str, Any]:
    """Regular generation step with tool access.

    Text is streamed as it is produced. Every tool use in the response becomes a
    pending tool-invocation part of the step's assistant message.
    """
    deps = _dependencies(config)
    step = state.step + 1
    deps.budget.raise_if_cancelled()
    logger.info(f"Generating step {step}/{state.max_steps}")

    def on_text(text: str) -> None:
        writer(TextDelta(step=step, text=text))

    with deps.tracer.span("generate", step=step):
        response = await deps.llm.generate_step(
            state.messages,
            get_system_prompt(),
            tools=deps.registry.llm_tool_definitions(),
            on_text=on_text,
            budget=deps.budget,
        )

    parts: list[Part] = []
    if response.text:
        parts.append(TextPart(text=response.text))
    for tool_use in response.tool_uses:
        parts.append(
            ToolInvocationPart(tool_call_id=tool_use.id, tool_name=tool_use.name, args=tool_use.input, step=step)
        )
    if not parts:
        logger.warning(f"Step {step} returned neither text nor tool calls")
        parts.append(TextPart(text=EMPTY_ANSWER))

    message = Message(role="assistant", parts=parts)
    phase = TurnPhase.EXECUTING_TOOLS if message.tool_invocations else TurnPhase.DONE
    logger.debug(f"Step {step} produced {len(message.tool_invocations)} tool calls, stop reason {response.stop_reason}")

    return {
        "messages": [*state.messages, message],
        "step": step,
        "phase": phase,
        **_usage_updates(state, response),
    }


async def tools_node(state: TurnState, config: RunnableConfig, writer: StreamWriter) -> dict[str, Any]:
    """Execute every tool call of the last step concurrently.

    Failures are folded into the invocation as an error payload. Only
    cancellation propagates, and it stops every sibling call still running.
    """
    deps = _dependencies(config)
    step = state.step
    message = state.messages[-1]
    deadline_passed = deps.budget.expired

    async def run(invocation: ToolInvocationPart) -> ToolInvocationPart:
        writer(
            ToolCallStarted(
                step=step,
                tool_call_id=invocation.tool_call_id,
                tool_name=invocation.tool_name,
                args=invocation.args,
            )
        )

        if deadline_passed:
            completed = invocation.advance(ToolInvocationState.COMPLETED, error=DEADLINE_EXCEEDED)
        else:
            completed = await _execute(deps, invocation, step)

        writer(
            ToolCallResult(
                step=step,
                tool_call_id=completed.tool_call_id,
                tool_name=completed.tool_name,
                result=completed.result,
                error=completed.error,
            )
        )
        return completed

    pending = [part for part in message.tool_invocations if part.state is not ToolInvocationState.COMPLETED]
    logger.info(f"Executing {len(pending)} tool calls for step {step}")
    tasks = [asyncio.create_task(run(part)) for part in pending]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    completed = {part.tool_call_id: part for part in results}
    deps.budget.raise_if_cancelled()

    parts: list[Part] = [
        completed.get(part.tool_call_id, part) if isinstance(part, ToolInvocationPart) else part
        for part in message.parts
    ]
    updated = message.model_copy(update={"parts": parts})

    return {
        "messages": [*state.messages[:-1], updated],
        "phase": TurnPhase.GENERATING,
        "budget_expired": deps.budget.expired,
    }


async def _execute(deps: TurnDependencies, invocation: ToolInvocationPart, step: int) -> ToolInvocationPart:
    try:
        call = deps.registry.parse_call(invocation.tool_name, invocation.args)
    except ToolValidationError as e:
        logger.warning(f"Rejected {invocation.tool_name} call {invocation.tool_call_id}: {e}")
        return invocation.advance(ToolInvocationState.COMPLETED, error=describe_error(e))

    called = invocation.advance(ToolInvocationState.CALLED)
    try:
        with deps.tracer.span("tool", step=step, tool=invocation.tool_name, tool_call_id=invocation.tool_call_id):
            result = await deps.registry.execute(call, deps.budget)
    except CancellationRequested:
        raise
    except Exception as e:
        logger.warning(f"Tool {invocation.tool_name} failed: {e!r}")
        return called.advance(ToolInvocationState.COMPLETED, error=describe_error(e))

    return called.advance(ToolInvocationState.COMPLETED, result=result)


async def forced_answer_node(state: TurnState, config: RunnableConfig, writer: StreamWriter) -> dict[str, Any]:
    """Final step without tools: answer from whatever context has been gathered."""
    deps = _dependencies(config)
    step = state.step + 1
    deps.budget.raise_if_cancelled()
    logger.info(f"Forcing a final answer at step {step}")

    def on_text(text: str) -> None:
        writer(TextDelta(step=step, text=text))

    with deps.tracer.span("forced_answer", step=step):
        response = await deps.llm.generate_step(
            state.messages,
            get_forced_answer_prompt(),
            tools=None,
            on_text=on_text,
            budget=deps.budget,
        )

    if response.tool_uses:
        logger.warning(f"Discarding {len(response.tool_uses)} tool calls requested in the forced answer")

    if not response.text:
        logger.warning(f"Forced answer at step {step} came back empty")
    parts: list[Part] = [TextPart(text=response.text or EMPTY_ANSWER)]

    return {
        "messages": [*state.messages, Message(role="assistant", parts=parts)],
        "step": step,
        "phase": TurnPhase.FORCED_ANSWER,
        **_usage_updates(state, response),
    }
