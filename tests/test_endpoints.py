"""Tests for API endpoints."""

import pytest
from conftest import FakeRelay, text_round, tool_round
from fastapi.testclient import TestClient

from assistant.api.endpoints import get_session_manager
from assistant.api.sse import decode_frames, iter_frames
from assistant.config import AppConfig
from assistant.main import app
from assistant.models.events import ItemAppended, StreamError, TurnCompleted, TurnErrored
from assistant.models.items import SystemMessage
from assistant.services.conversation import ConversationService, get_conversation_service
from assistant.services.message_log import InMemoryMessageLog
from assistant.services.session_manager import InMemorySessionManager
from assistant.services.workspace import InMemoryNoteService, Note


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def manager():
    return InMemorySessionManager()


@pytest.fixture
def service(relay, registry):
    notes = InMemoryNoteService([Note(title="Allergy", content="Peanuts", priority="high")])
    return ConversationService(
        relay=relay, registry=registry, notes=notes, log=InMemoryMessageLog(), config=AppConfig()
    )


@pytest.fixture
def client(service, manager):
    app.dependency_overrides[get_conversation_service] = lambda: service
    app.dependency_overrides[get_session_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        response = client.get("/health")
        data = response.json()

        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    def test_health_check_content_type(self, client):
        response = client.get("/health")
        assert response.headers["content-type"] == "application/json"


class TestConversationEndpoint:
    """Tests for the blocking conversation endpoint."""

    def test_conversation_runs_a_turn(self, client, relay):
        relay.rounds = [tool_round("get_weather", {"location": "Boston"}), text_round("It's 72°F in Boston.")]

        response = client.post("/conversation", json={"message": "What's the weather in Boston?"})
        data = response.json()

        assert response.status_code == 200
        assert data["response"] == "It's 72°F in Boston."
        assert data["status"] == "complete"
        assert data["rounds"] == 2
        assert data["conversation_id"]

    def test_conversation_continues_existing_conversation(self, client, relay, manager):
        relay.rounds = [text_round("Hi!"), text_round("Hi again!", item_id="msg_2")]

        first = client.post("/conversation", json={"message": "Hello"}).json()
        second = client.post(
            "/conversation", json={"message": "Hello again", "conversation_id": first["conversation_id"]}
        ).json()

        assert second["conversation_id"] == first["conversation_id"]
        session = manager.get_session(first["conversation_id"])
        assert [item.type for item in session.store.displayable()] == [
            "user_message",
            "assistant_message",
            "user_message",
            "assistant_message",
        ]

    def test_unknown_conversation_id(self, client):
        response = client.post("/conversation", json={"message": "Hello", "conversation_id": "nope"})
        assert response.status_code == 400

    def test_message_too_long(self, client, service):
        service.config.max_message_tokens = 5
        response = client.post("/conversation", json={"message": "word " * 100})

        assert response.status_code == 400
        assert "too long" in response.json()["detail"]

    def test_missing_message(self, client):
        response = client.post("/conversation", json={})
        assert response.status_code == 422

    def test_errored_turn_is_reported(self, client, relay):
        relay.rounds = [[text_round("partial")[0], StreamError(message="backend down")]]

        response = client.post("/conversation", json={"message": "Hello"})
        data = response.json()

        assert response.status_code == 200
        assert data["status"] == "errored"
        assert data["error"] == "backend down"


class TestStreamingEndpoint:
    """Tests for the server-sent event conversation endpoint."""

    def test_stream_frames(self, client, relay):
        relay.rounds = [tool_round("get_weather", {"location": "Boston"}), text_round("72°F.")]

        response = client.post("/conversation/stream", json={"message": "Weather?"})
        events = decode_frames(response.text.splitlines())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-conversation-id"]
        assert isinstance(events[-1], TurnCompleted)
        assert events[-1].message.text == "72°F."
        appended = [event.item.type for event in events if isinstance(event, ItemAppended)]
        assert appended == ["system_message", "user_message", "tool_call", "tool_call_output", "assistant_message"]

    def test_stream_error_frame(self, client, relay):
        response = client.post("/conversation/stream", json={"message": "Hello"})
        kinds = [event for event, _ in iter_frames(response.text.splitlines())]

        assert kinds[-2:] == ["stream.error", "turn.error"]
        assert isinstance(decode_frames(response.text.splitlines())[-1], TurnErrored)

    def test_stream_rejects_long_message_before_streaming(self, client, service):
        service.config.max_message_tokens = 5
        response = client.post("/conversation/stream", json={"message": "word " * 100})
        assert response.status_code == 400


class TestConversationResources:
    """Tests for conversation creation, items and messages."""

    def test_create_conversation(self, client, manager):
        response = client.post("/conversations")
        conversation_id = response.json()["conversation_id"]

        assert response.status_code == 200
        assert manager.get_session(conversation_id) is not None

    def test_items_hide_system_context(self, client, relay):
        relay.rounds = [text_round("Hi!")]
        conversation_id = client.post("/conversation", json={"message": "Hello"}).json()["conversation_id"]

        items = client.get(f"/conversations/{conversation_id}/items").json()["items"]

        assert [item["type"] for item in items] == ["user_message", "assistant_message"]

    def test_system_context_was_stored(self, client, relay, manager):
        relay.rounds = [text_round("Hi!")]
        conversation_id = client.post("/conversation", json={"message": "Hello"}).json()["conversation_id"]

        stored = manager.get_session(conversation_id).store.all()
        assert isinstance(stored[0], SystemMessage)

    def test_messages(self, client, relay):
        relay.rounds = [text_round("Hi!")]
        conversation_id = client.post("/conversation", json={"message": "Hello"}).json()["conversation_id"]

        messages = client.get(f"/conversations/{conversation_id}/messages").json()["messages"]

        assert [(message["role"], message["content"]) for message in messages] == [
            ("user", "Hello"),
            ("assistant", "Hi!"),
        ]

    def test_unknown_conversation_is_404(self, client):
        assert client.get("/conversations/missing/items").status_code == 404
        assert client.get("/conversations/missing/messages").status_code == 404


class TestTurnResponseEndpoint:
    """Tests for the raw relay passthrough."""

    def test_relays_one_round(self, client, relay):
        relay.rounds = [tool_round("get_weather", {"location": "Boston"})]
        body = {"items": [{"type": "user_message", "text": "Weather?"}]}

        response = client.post("/turn_response", json=body)
        kinds = [event for event, _ in iter_frames(response.text.splitlines())]

        assert kinds == ["tool_call.delta", "tool_call.delta", "tool_call.delta", "tool_call.complete", "stream.end"]
        assert relay.calls[0][0].text == "Weather?"

    def test_rejects_unknown_item_type(self, client):
        response = client.post("/turn_response", json={"items": [{"type": "video", "url": "x"}]})
        assert response.status_code == 422


class TestAPIDocumentation:
    """Tests for API documentation endpoints."""

    def test_openapi_json_available(self, client):
        response = client.get("/openapi.json")
        assert response.status_code == 200
        assert "/conversation/stream" in response.json()["paths"]
