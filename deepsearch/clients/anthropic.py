"""Anthropic API client with streaming, retries and context-window management."""

import asyncio
import json
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Literal

import tiktoken
from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Message
from pydantic import BaseModel

from deepsearch.agent.budget import Budget
from deepsearch.errors import ProviderError
from deepsearch.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMResponse,
    LLMToolDefinition,
    LLMUsage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDER = "anthropic"
TRUNCATION_MARKER = "\n[truncated to fit the context window]"

TextCallback = Callable[[str], None]

# Longest provider-requested wait honoured on a 429
MAX_RETRY_AFTER_SECONDS = 120.0
DEFAULT_RETRY_AFTER_SECONDS = 60.0


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0

    # Token limits for validation and truncation
    max_conversation_tokens: int = 200000  # Claude Sonnet context window
    token_headroom: int = 4096  # Reserve tokens for response


class AnthropicClient:
    """Low-level Anthropic API client with streaming, retries and truncation."""

    tokenizer: tiktoken.Encoding | None = None
    api_key: str
    client: AsyncAnthropic
    config: AnthropicConfig

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.api_key = anthropic_api_key

        self.config = config or AnthropicConfig()
        # Retries are handled here so a partially streamed step is never replayed
        self.client = AsyncAnthropic(api_key=self.api_key, max_retries=0)

        # Initialize tokenizer for token estimation
        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
        on_text: TextCallback | None = None,
        budget: Budget | None = None,
        **kwargs,
    ) -> LLMResponse:
        """Stream one message from Claude, reporting text chunks as they arrive.

        Args:
            messages: Conversation history
            system_prompt: System prompt for Claude
            tools: Available tools; ``None`` disables tool use for this request
            on_text: Called with every text chunk as it is produced
            budget: Turn budget bounding how long a rate-limited request may wait
            **kwargs: Overrides for model, max_tokens and temperature

        Returns:
            Provider-agnostic response with the full content of the message

        Raises:
            ProviderError: If the request fails after all retries
        """
        anthropic_tools = self._to_anthropic_tools(tools)
        truncated_messages = self.truncate_conversation(messages, system_prompt, anthropic_tools)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": [msg.model_dump(exclude_none=True) for msg in truncated_messages],
        }
        if anthropic_tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in anthropic_tools]

        logger.debug(
            f"Streaming message with {len(truncated_messages)} messages, "
            f"{len(anthropic_tools)} tools, model: {request_params['model']}"
        )

        streamed = False

        async def call() -> Message:
            nonlocal streamed
            async with self.client.messages.stream(**request_params) as stream:
                async for text in stream.text_stream:
                    streamed = True
                    if on_text is not None:
                        on_text(text)
                return await stream.get_final_message()

        response = await self._request_with_retries(call, lambda: streamed, budget)

        usage = LLMUsage()
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
                cache_creation_input_tokens=response.usage.cache_creation_input_tokens or 0,
                cache_read_input_tokens=response.usage.cache_read_input_tokens or 0,
            )

        logger.debug(
            f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}"
        )

        return LLMResponse(
            content=self._convert_content_blocks(response.content),
            stop_reason=response.stop_reason,
            usage=usage,
            model=response.model,
            provider=PROVIDER,
        )

    async def _request_with_retries(
        self,
        call: Callable[[], Awaitable[Message]],
        has_streamed: Callable[[], bool],
        budget: Budget | None = None,
    ) -> Message:
        """Execute an Anthropic request with retry logic.

        A request that has already streamed text to the caller is never retried,
        and a rate-limit wait that would outlast the turn budget is not attempted.
        """
        sleep = budget.sleep if budget is not None else asyncio.sleep

        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            try:
                return await call()

            except APIStatusError as e:
                if has_streamed() or last_attempt:
                    raise ProviderError(e.message, PROVIDER, e.status_code) from e

                if e.status_code == 429:  # Rate limit exceeded
                    retry_after = self._parse_retry_after(e.response.headers.get("retry-after"))
                    max_wait = MAX_RETRY_AFTER_SECONDS
                    if budget is not None:
                        max_wait = min(max_wait, budget.time_remaining())
                    if retry_after < max_wait:
                        logger.warning(f"Anthropic rate limit hit, retrying in {retry_after:.1f}s")
                        await sleep(retry_after)
                        continue
                    logger.warning(f"Anthropic rate limit wait of {retry_after:.1f}s exceeds {max_wait:.1f}s left")

                elif e.status_code >= 500:
                    # Server error, retry with exponential backoff
                    await sleep(self.config.retry_delay * (2**attempt))
                    continue

                # Not retryable
                raise ProviderError(e.message, PROVIDER, e.status_code) from e

            except APIConnectionError as e:
                if has_streamed() or last_attempt:
                    raise ProviderError(f"Connection failed: {e}", PROVIDER) from e
                await sleep(self.config.retry_delay * (2**attempt))

        raise ProviderError(f"Failed to complete request after {self.config.max_retries} attempts", PROVIDER)

    @staticmethod
    def _parse_retry_after(value: str | None) -> float:
        """Seconds to wait from a ``retry-after`` header given as seconds or an HTTP date."""
        if value is None:
            return DEFAULT_RETRY_AFTER_SECONDS
        try:
            return max(0.0, float(value))
        except ValueError:
            pass
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.warning(f"Unparseable retry-after header: {value!r}")
            return DEFAULT_RETRY_AFTER_SECONDS
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=UTC)
        return max(0.0, (retry_at - datetime.now(UTC)).total_seconds())

    @staticmethod
    def _to_anthropic_tools(tools: list[LLMToolDefinition] | None) -> list[AnthropicTool]:
        if not tools:
            return []

        anthropic_tools = [
            AnthropicTool(name=tool.name, description=tool.description, input_schema=tool.input_schema)
            for tool in tools
        ]
        # Cache control on the last tool caches all tool definitions across steps
        anthropic_tools[-1].cache_control = CacheControl(type="ephemeral", ttl="5m")
        return anthropic_tools

    def _convert_content_blocks(self, anthropic_content: list[AnthropicContentBlock]) -> list[ContentBlock]:
        """Convert Anthropic content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump() if hasattr(block, "model_dump") else dict(block)

            if block_dict.get("type") == "text":
                converted_blocks.append(TextBlock.model_validate(block_dict))
            elif block_dict.get("type") == "tool_use":
                converted_blocks.append(ToolUseBlock.model_validate(block_dict))
            else:
                logger.warning(f"Unknown content block type: {block_dict.get('type')}")

        return converted_blocks

    @staticmethod
    def _message_text(message: LLMMessage) -> str:
        if isinstance(message.content, str):
            return message.content

        chunks: list[str] = []
        for block in message.content:
            if isinstance(block, TextBlock):
                chunks.append(block.text)
            elif isinstance(block, ToolUseBlock):
                chunks.append(block.name + json.dumps(block.input))
            elif isinstance(block, ToolResultBlock):
                chunks.append(block.content)
        return "".join(chunks)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def truncate_conversation(
        self, messages: list[LLMMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[LLMMessage]:
        """Truncate the conversation to fit within token limits.

        The latest question (the last user message that is not a bare tool result)
        is always kept. Steps after it, each an assistant message with the tool
        results answering it, are dropped oldest first and never split; if even the
        newest step does not fit, its tool results are shortened. Earlier history
        is only kept when every step of the current turn fits, and it always starts
        with a user question so no ``tool_result`` is left without its ``tool_use``.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_message_tokens(system_prompt)
        if tools:
            tool_content = "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            available_tokens -= self.estimate_message_tokens(tool_content)

        costs = [self._message_tokens(message) for message in messages]
        if sum(costs) <= available_tokens:
            return messages

        question_index = next(
            (i for i in range(len(messages) - 1, -1, -1) if self._is_conversation_start(messages[i])), None
        )
        if question_index is None:
            logger.warning("No user question found in conversation, sending it untruncated")
            return messages

        remaining = available_tokens - costs[question_index]

        steps = self._group_steps(messages[question_index + 1 :])
        kept_steps: list[list[LLMMessage]] = []
        for step in reversed(steps):
            step_tokens = sum(self._message_tokens(message) for message in step)
            if step_tokens > remaining:
                break
            kept_steps.insert(0, step)
            remaining -= step_tokens

        if steps and not kept_steps:
            kept_steps = [self._shorten_tool_results(steps[-1], remaining)]
            remaining = 0

        history: list[LLMMessage] = []
        if len(kept_steps) == len(steps):
            for message, cost in zip(reversed(messages[:question_index]), reversed(costs[:question_index])):
                if cost > remaining:
                    break
                history.insert(0, message)
                remaining -= cost
            while history and not self._is_conversation_start(history[0]):
                history.pop(0)

        truncated_messages = [*history, messages[question_index], *(m for step in kept_steps for m in step)]
        logger.warning(
            f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
            f"to fit within {available_tokens} token limit"
        )
        return truncated_messages

    def _message_tokens(self, message: LLMMessage) -> int:
        return self.estimate_message_tokens(self._message_text(message))

    @staticmethod
    def _group_steps(messages: list[LLMMessage]) -> list[list[LLMMessage]]:
        """Split messages into steps, each starting at an assistant message."""
        steps: list[list[LLMMessage]] = []
        for message in messages:
            if message.role == "assistant" or not steps:
                steps.append([message])
            else:
                steps[-1].append(message)
        return steps

    def _shorten_tool_results(self, step: list[LLMMessage], max_tokens: int) -> list[LLMMessage]:
        """Cut the tool results of one step until the step fits in ``max_tokens``."""
        result_count = sum(
            1
            for message in step
            if not isinstance(message.content, str)
            for block in message.content
            if isinstance(block, ToolResultBlock)
        )
        fixed_tokens = sum(
            self._message_tokens(message)
            for message in step
            if isinstance(message.content, str)
            or not any(isinstance(block, ToolResultBlock) for block in message.content)
        )
        # Start from roughly 4 characters per token and halve until the estimate fits
        max_chars = max(0, (max_tokens - fixed_tokens) * 4 // max(result_count, 1))
        while True:
            shortened = [self._cut_tool_results(message, max_chars) for message in step]
            if max_chars == 0 or sum(self._message_tokens(message) for message in shortened) <= max_tokens:
                logger.warning(f"Shortened {result_count} tool results to {max_chars} characters each")
                return shortened
            max_chars //= 2

    @staticmethod
    def _cut_tool_results(message: LLMMessage, max_chars: int) -> LLMMessage:
        if isinstance(message.content, str):
            return message

        blocks: list[ContentBlock] = []
        for block in message.content:
            if isinstance(block, ToolResultBlock) and len(block.content) > max_chars:
                block = block.model_copy(update={"content": block.content[:max_chars] + TRUNCATION_MARKER})
            blocks.append(block)
        return LLMMessage(role=message.role, content=blocks)

    @staticmethod
    def _is_conversation_start(message: LLMMessage) -> bool:
        if message.role != "user":
            return False
        if isinstance(message.content, str):
            return True
        return not any(isinstance(block, ToolResultBlock) for block in message.content)


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client(config: AnthropicConfig | None = None) -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient(config=config)
    return _anthropic_client
