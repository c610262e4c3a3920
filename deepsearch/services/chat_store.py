"""Chat persistence: replace-on-write storage of conversation messages."""

from datetime import UTC, datetime
from typing import Protocol

from deepsearch.errors import ChatOwnershipError
from deepsearch.models.chat import Chat, ChatSummary
from deepsearch.models.messages import Message
from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 100


def title_from_messages(messages: list[Message]) -> str:
    """Title of a chat: the start of its first user message."""
    first_user = next((message for message in messages if message.role == "user" and message.text), None)
    if first_user is None:
        return "New chat"
    return first_user.text.strip()[:TITLE_MAX_LENGTH] or "New chat"


class ChatRepository(Protocol):
    """Storage interface for chats."""

    async def replace_messages(self, chat_id: str, user_id: str, title: str, messages: list[Message]) -> Chat:
        """Create the chat or replace all of its messages.

        Raises:
            ChatOwnershipError: If the chat exists and belongs to another user
        """
        ...

    async def get_chat(self, chat_id: str, user_id: str) -> Chat | None:
        """Get a chat owned by ``user_id``, or ``None``."""
        ...

    async def list_chats(self, user_id: str) -> list[ChatSummary]:
        """List a user's chats, most recently updated first."""
        ...


class InMemoryChatRepository:
    """In-memory chat repository for development and tests."""

    def __init__(self):
        self.chats: dict[str, Chat] = {}

    async def replace_messages(self, chat_id: str, user_id: str, title: str, messages: list[Message]) -> Chat:
        """Create the chat or replace all of its messages.

        Replacing with the same message list twice leaves the same stored state.

        Args:
            chat_id: Chat identifier
            user_id: Caller's user id, must own the chat if it exists
            title: Chat title
            messages: Full message list in order

        Returns:
            Copy of the stored chat

        Raises:
            ChatOwnershipError: If the chat exists and belongs to another user
        """
        now = datetime.now(UTC)
        existing = self.chats.get(chat_id)
        if existing is not None and existing.user_id != user_id:
            logger.warning(f"User {user_id} attempted to write chat {chat_id} owned by another user")
            raise ChatOwnershipError(f"Chat {chat_id} does not belong to the current user")

        chat = Chat(
            id=chat_id,
            user_id=user_id,
            title=title,
            messages=list(messages),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.chats[chat_id] = chat
        logger.debug(f"Stored {len(messages)} messages for chat {chat_id}")
        return chat.model_copy(deep=True)

    async def get_chat(self, chat_id: str, user_id: str) -> Chat | None:
        chat = self.chats.get(chat_id)
        if chat is None or chat.user_id != user_id:
            return None
        return chat.model_copy(deep=True)

    async def list_chats(self, user_id: str) -> list[ChatSummary]:
        chats = sorted(
            (chat for chat in self.chats.values() if chat.user_id == user_id),
            key=lambda chat: chat.updated_at,
            reverse=True,
        )
        return [
            ChatSummary(id=chat.id, title=chat.title, created_at=chat.created_at, updated_at=chat.updated_at)
            for chat in chats
        ]


_chat_repository: ChatRepository | None = None


def get_chat_repository() -> ChatRepository:
    """Get or create chat repository instance."""
    global _chat_repository
    if _chat_repository is None:
        _chat_repository = InMemoryChatRepository()
    return _chat_repository
