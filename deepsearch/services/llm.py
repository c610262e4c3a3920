"""LLM service: one streamed generation step over the conversation."""

import json
from collections.abc import Callable
from typing import Any

from deepsearch.agent.budget import Budget
from deepsearch.clients.anthropic import AnthropicClient, get_anthropic_client
from deepsearch.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMResponse,
    LLMToolDefinition,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from deepsearch.models.messages import Message, ToolInvocationPart, ToolInvocationState
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

INCOMPLETE_TOOL_RESULT = "Tool call did not complete"


def _result_content(invocation: ToolInvocationPart) -> ToolResultBlock:
    if invocation.state is not ToolInvocationState.COMPLETED:
        return ToolResultBlock(tool_use_id=invocation.tool_call_id, content=INCOMPLETE_TOOL_RESULT, is_error=True)

    if invocation.is_error:
        return ToolResultBlock(tool_use_id=invocation.tool_call_id, content=invocation.error or "", is_error=True)

    result = invocation.result
    content = result if isinstance(result, str) else json.dumps(result, ensure_ascii=False)
    return ToolResultBlock(tool_use_id=invocation.tool_call_id, content=content)


def _append(llm_messages: list[LLMMessage], role: str, blocks: list[ContentBlock]) -> None:
    """Append blocks, merging into the previous message when the role repeats."""
    if not blocks:
        return

    if llm_messages and llm_messages[-1].role == role:
        previous = llm_messages[-1]
        previous_blocks = (
            [TextBlock(text=previous.content)] if isinstance(previous.content, str) else list(previous.content)
        )
        llm_messages[-1] = LLMMessage(role=previous.role, content=previous_blocks + blocks)
        return

    llm_messages.append(LLMMessage(role=role, content=blocks))  # type: ignore[arg-type]


def to_llm_messages(messages: list[Message]) -> list[LLMMessage]:
    """Convert conversation messages to provider messages.

    Each assistant message becomes an assistant turn with its text and tool_use
    blocks, followed by a user turn carrying one tool_result per invocation.
    ``tool`` role messages only supply results for invocations that were not
    completed in the assistant message itself.

    Args:
        messages: Conversation messages

    Returns:
        Alternating user/assistant provider messages
    """
    replayed: dict[str, ToolInvocationPart] = {}
    for message in messages:
        if message.role == "tool":
            for invocation in message.tool_invocations:
                if invocation.state is ToolInvocationState.COMPLETED:
                    replayed[invocation.tool_call_id] = invocation

    llm_messages: list[LLMMessage] = []
    for message in messages:
        match message.role:
            case "user":
                if message.text:
                    _append(llm_messages, "user", [TextBlock(text=message.text)])

            case "assistant":
                blocks: list[ContentBlock] = []
                if message.text:
                    blocks.append(TextBlock(text=message.text))

                results: list[ContentBlock] = []
                for invocation in message.tool_invocations:
                    blocks.append(ToolUseBlock(id=invocation.tool_call_id, name=invocation.tool_name, input=invocation.args))
                    if invocation.state is not ToolInvocationState.COMPLETED:
                        invocation = replayed.get(invocation.tool_call_id, invocation)
                    results.append(_result_content(invocation))

                _append(llm_messages, "assistant", blocks)
                _append(llm_messages, "user", results)

            case "tool":
                # Folded into the matching assistant message above
                continue

    return llm_messages


class LLMService:
    """High-level LLM service used by the orchestration loop."""

    def __init__(self, client: AnthropicClient | None = None):
        """Initialize LLM service.

        Args:
            client: Anthropic client (defaults to global instance)
        """
        self.client = client or get_anthropic_client()

    async def generate_step(
        self,
        messages: list[Message],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
        on_text: Callable[[str], None] | None = None,
        budget: Budget | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Run one generation step, streaming text through ``on_text``.

        Args:
            messages: Conversation so far
            system_prompt: System prompt for the step
            tools: Tools the model may call; ``None`` forces a text-only answer
            on_text: Called with each text chunk as it is produced
            budget: Turn budget; cancellation aborts the request and its deadline bounds rate-limit waits
            **kwargs: Additional parameters for the provider

        Returns:
            The complete response of the step

        Raises:
            ProviderError: If the provider fails after its retries
            CancellationRequested: If the budget is cancelled mid-generation
        """
        llm_messages = to_llm_messages(messages)
        logger.debug(f"Generating step with {len(llm_messages)} messages and {len(tools or [])} tools")

        request = self.client.stream_message(
            messages=llm_messages,
            system_prompt=system_prompt,
            tools=tools,
            on_text=on_text,
            budget=budget,
            **kwargs,
        )
        if budget is None:
            return await request
        return await budget.guard(request)


_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get or create LLM service instance."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
