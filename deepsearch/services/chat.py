"""Chat service: rate limiting, persistence and the streamed turn for one request."""

from collections.abc import AsyncIterator

from deepsearch.agent.budget import Budget
from deepsearch.agent.graph import TurnContext, TurnRunner
from deepsearch.agent.tracing import LoggingTracer
from deepsearch.config import AgentConfig, get_settings
from deepsearch.models.chat import Chat, ChatRequest, ChatSummary
from deepsearch.models.events import StreamEvent
from deepsearch.models.messages import cuid
from deepsearch.models.turn import TurnOutcome
from deepsearch.services.chat_store import ChatRepository, get_chat_repository, title_from_messages
from deepsearch.services.rate_limit import RateLimiter, get_rate_limiter
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)


class ChatService:
    """Coordinates one chat turn from request to persisted outcome."""

    def __init__(
        self,
        runner: TurnRunner | None = None,
        repository: ChatRepository | None = None,
        rate_limiter: RateLimiter | None = None,
        config: AgentConfig | None = None,
    ):
        """Initialize chat service with its collaborators.

        Args:
            runner: Turn runner (defaults to one built from global services)
            repository: Chat repository (defaults to global instance)
            rate_limiter: Rate limiter (defaults to global instance)
            config: Agent configuration (defaults to settings)
        """
        self.config = config or get_settings().agent
        self.runner = runner or TurnRunner(config=self.config)
        self.repository = repository or get_chat_repository()
        self.rate_limiter = rate_limiter or get_rate_limiter()

    async def start_turn(self, request: ChatRequest, user_id: str) -> AsyncIterator[StreamEvent]:
        """Admit the request and return the stream of the turn.

        Admission records the request against the user's rate limit and saves the
        incoming messages, so the chat exists even if the turn fails. The final
        message list is saved once more when the turn ends.

        Args:
            request: Chat request with the full prior message list
            user_id: Authenticated caller

        Returns:
            Async iterator of stream events

        Raises:
            RateLimitExceeded: If the caller is over its limit
            ChatOwnershipError: If the chat belongs to another user
        """
        decision = await self.rate_limiter.acquire(user_id)
        logger.info(f"Admitted chat turn for user {user_id}, {decision.remaining}/{decision.limit} requests left")

        chat_id = request.chat_id
        title = title_from_messages(request.messages)
        await self.repository.replace_messages(chat_id, user_id, title, request.messages)

        context = TurnContext(
            chat_id=chat_id,
            user_id=user_id,
            budget=Budget(self.config.turn_deadline_seconds),
            is_new_chat=request.is_new_chat,
            tracer=LoggingTracer(trace_id=cuid()),
        )

        async def persist(outcome: TurnOutcome) -> None:
            await self.repository.replace_messages(chat_id, user_id, title, outcome.messages)

        return self.runner.run_turn(request.messages, context, on_finish=persist)

    async def get_chat(self, chat_id: str, user_id: str) -> Chat | None:
        return await self.repository.get_chat(chat_id, user_id)

    async def list_chats(self, user_id: str) -> list[ChatSummary]:
        return await self.repository.list_chats(user_id)


_chat_service: ChatService | None = None


def get_chat_service() -> ChatService:
    """Get or create chat service instance."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
