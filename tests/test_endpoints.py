"""Tests for API endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from deepsearch.agent.graph import TurnRunner
from deepsearch.config import AgentConfig, RateLimitConfig
from deepsearch.main import app
from deepsearch.models.messages import Message
from deepsearch.services.chat import ChatService, get_chat_service
from deepsearch.services.chat_store import InMemoryChatRepository
from deepsearch.services.rate_limit import RateLimiter

from conftest import FakeLLM, make_registry, text_response, tool_response

HEADERS = {"X-User-Id": "user-1"}


def make_service(script: list, limit: str = "50/day") -> ChatService:
    config = AgentConfig()
    return ChatService(
        runner=TurnRunner(llm=FakeLLM(script), registry=make_registry(), config=config),
        repository=InMemoryChatRepository(),
        rate_limiter=RateLimiter(config=RateLimitConfig(limit=limit)),
        config=config,
    )


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def use_service(service: ChatService) -> ChatService:
    app.dependency_overrides[get_chat_service] = lambda: service
    return service


def read_events(response) -> list[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line]


def chat_body(text: str = "Who won the 2022 World Cup?", **extra) -> dict:
    return {"messages": [{"role": "user", "content": text}], **extra}


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client):
        """Test that health check returns status and version."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data


class TestChatEndpoint:
    """Tests for the streamed chat endpoint."""

    def test_requires_user_header(self, client):
        """Test that requests without X-User-Id are rejected."""
        use_service(make_service([]))

        response = client.post("/chat", json=chat_body())

        assert response.status_code == 401

    def test_rejects_empty_messages(self, client):
        """Test that a request without messages fails validation."""
        use_service(make_service([]))

        response = client.post("/chat", json={"messages": []}, headers=HEADERS)

        assert response.status_code == 422

    def test_streams_ndjson_events(self, client):
        """Test that a turn streams its events and ends with the final messages."""
        service = use_service(
            make_service(
                [
                    tool_response(("t1", "searchWeb", {"query": "2022 World Cup winner"})),
                    text_response("Argentina won the 2022 World Cup."),
                ]
            )
        )

        response = client.post("/chat", json=chat_body(chat_id="chat-42", is_new_chat=True), headers=HEADERS)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = read_events(response)
        types = [event["type"] for event in events]
        assert types[0] == "chat-id-assigned"
        assert events[0]["chat_id"] == "chat-42"
        assert "tool-call-started" in types
        assert "tool-call-result" in types
        assert types[-1] == "turn-finished"
        assert events[-1]["phase"] == "done"
        assert events[-1]["messages"][-1]["parts"][-1]["text"] == "Argentina won the 2022 World Cup."

        stored = service.repository.chats["chat-42"]
        assert stored.user_id == "user-1"
        assert stored.title == "Who won the 2022 World Cup?"
        assert len(stored.messages) == len(events[-1]["messages"])

    def test_failed_turn_streams_error_and_keeps_prior_messages(self, client):
        """Test that a failed turn ends with turn-errored and persists the prior list."""
        service = use_service(make_service([RuntimeError("model exploded")]))

        response = client.post("/chat", json=chat_body(chat_id="chat-7"), headers=HEADERS)

        events = read_events(response)
        assert events[-1]["type"] == "turn-errored"
        assert "model exploded" in events[-1]["error"]
        assert [message["role"] for message in events[-1]["messages"]] == ["user"]
        assert len(service.repository.chats["chat-7"].messages) == 1

    def test_rate_limited(self, client):
        """Test that a caller over the limit gets 429 with limit headers."""
        use_service(make_service([text_response("One."), text_response("Two.")], limit="1/minute"))

        first = client.post("/chat", json=chat_body(), headers=HEADERS)
        second = client.post("/chat", json=chat_body(), headers=HEADERS)

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.headers["X-RateLimit-Limit"] == "1"
        assert second.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in second.headers
        data = second.json()
        assert data["error"] == "Rate limit exceeded"
        assert data["limit"] == 1

    def test_foreign_chat_forbidden(self, client):
        """Test that writing to another user's chat is refused."""
        service = use_service(make_service([text_response("Hi.")]))
        client.post("/chat", json=chat_body(chat_id="shared"), headers=HEADERS)

        response = client.post("/chat", json=chat_body(chat_id="shared"), headers={"X-User-Id": "user-2"})

        assert response.status_code == 403
        assert service.repository.chats["shared"].user_id == "user-1"


class TestChatHistoryEndpoints:
    """Tests for reading stored chats."""

    def test_list_and_get_chats(self, client):
        """Test that stored chats are listed and fetched by their owner."""
        service = use_service(make_service([text_response("Paris.")]))
        client.post("/chat", json=chat_body("Capital of France?", chat_id="c1"), headers=HEADERS)

        listed = client.get("/chats", headers=HEADERS)
        fetched = client.get("/chats/c1", headers=HEADERS)

        assert listed.status_code == 200
        assert [chat["id"] for chat in listed.json()] == ["c1"]
        assert listed.json()[0]["title"] == "Capital of France?"
        assert fetched.status_code == 200
        messages = [Message.model_validate(message) for message in fetched.json()["messages"]]
        assert [message.text for message in messages] == ["Capital of France?", "Paris."]
        assert service.repository.chats["c1"].messages == messages

    def test_missing_chat_is_404(self, client):
        """Test that unknown chats are not found."""
        use_service(make_service([]))

        response = client.get("/chats/nope", headers=HEADERS)

        assert response.status_code == 404

    def test_other_users_chats_hidden(self, client):
        """Test that another user's chat looks like it does not exist."""
        use_service(make_service([text_response("Hi.")]))
        client.post("/chat", json=chat_body(chat_id="private"), headers=HEADERS)

        assert client.get("/chats/private", headers={"X-User-Id": "user-2"}).status_code == 404
        assert client.get("/chats", headers={"X-User-Id": "user-2"}).json() == []
