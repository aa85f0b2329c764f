"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from conversation_core.api import create_fastapi_app
from conversation_core.app import Application
from conversation_core.config import Settings

ALICE = {"kind": "user", "id": "U1", "display_name": "Alice"}
HELPER = {
    "kind": "agent",
    "id": "A1",
    "display_name": "Helper",
    "specialization": "support",
}


@pytest.fixture
def client():
    """Client over an application backed by the in-memory log."""
    application = Application(
        Settings(event_log_backend="memory", command_retry_base_delay=0.0)
    )
    with TestClient(create_fastapi_app(application)) as test_client:
        yield test_client


@pytest.fixture
def conversation(client):
    response = client.post(
        "/api/conversations",
        json={
            "conversation_id": "C1",
            "participants": [ALICE, HELPER],
            "context": {"topic": "billing"},
        },
    )
    assert response.status_code == 201
    return "C1"


class TestCommandRoutes:
    """Tests for command ingress."""

    def test_start_conversation(self, client):
        """Test starting returns the recorded event."""
        response = client.post(
            "/api/conversations",
            json={"conversation_id": "C1", "participants": [ALICE, HELPER]},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["conversation_id"] == "C1"
        assert data["events"][0]["sequence"] == 1
        assert data["events"][0]["event_type"] == "ConversationStarted"
        assert data["events"][0]["payload"]["participants"][1]["kind"] == "agent"

    def test_start_generates_id(self, client):
        """Test an id is generated when the client omits one."""
        response = client.post("/api/conversations", json={"participants": [ALICE]})

        assert response.status_code == 201
        assert response.json()["conversation_id"]

    def test_send_text_and_structured(self, client, conversation):
        """Test both message kinds are accepted."""
        text = client.post(
            f"/api/conversations/{conversation}/messages",
            json={
                "sender_id": "U1",
                "body": "hello",
                "attachments": [{"id": "f1", "type": "image"}],
            },
        )
        structured = client.post(
            f"/api/conversations/{conversation}/messages",
            json={"sender_id": "A1", "payload": {"rating": 5}, "format_type": "survey"},
        )

        assert text.status_code == 200
        assert text.json()["events"][0]["sequence"] == 2
        assert structured.json()["events"][0]["payload"]["message"]["kind"] == "structured"

    def test_add_participant_idempotent(self, client, conversation):
        """Test re-adding a participant returns no events."""
        bob = {"kind": "user", "id": "U2", "display_name": "Bob"}
        first = client.post(f"/api/conversations/{conversation}/participants", json=bob)
        second = client.post(f"/api/conversations/{conversation}/participants", json=bob)

        assert len(first.json()["events"]) == 1
        assert second.status_code == 200
        assert second.json()["events"] == []

    def test_lifecycle(self, client, conversation):
        """Test pause, resume and end."""
        assert client.post(f"/api/conversations/{conversation}/pause").status_code == 200
        assert client.post(f"/api/conversations/{conversation}/resume").status_code == 200
        response = client.post(
            f"/api/conversations/{conversation}/end", json={"reason": "resolved"}
        )

        assert response.status_code == 200
        assert response.json()["events"][0]["payload"]["reason"] == "resolved"

    def test_update_context(self, client, conversation):
        """Test context merge and replace."""
        client.put(
            f"/api/conversations/{conversation}/context",
            json={"values": {"priority": "high"}},
        )
        assert client.get(f"/api/conversations/{conversation}").json()["context"] == {
            "topic": "billing",
            "priority": "high",
        }

        client.put(
            f"/api/conversations/{conversation}/context",
            json={"values": {"stage": 2}, "mode": "replace"},
        )
        assert client.get(f"/api/conversations/{conversation}").json()["context"] == {
            "stage": 2
        }


class TestErrorMapping:
    """Tests for how rejections map to HTTP status codes."""

    def test_unknown_conversation_is_404(self, client):
        response = client.post("/api/conversations/nope/pause")

        assert response.status_code == 404
        assert response.json()["code"] == "conversation_not_found"

    def test_validation_is_422(self, client, conversation):
        response = client.post(
            f"/api/conversations/{conversation}/messages",
            json={"sender_id": "U1", "body": ""},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "validation_failed"

    def test_unknown_sender_is_422(self, client, conversation):
        response = client.post(
            f"/api/conversations/{conversation}/messages",
            json={"sender_id": "U404", "body": "hi"},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "unknown_participant"
        assert response.json()["details"]["participant_id"] == "U404"

    def test_message_after_end_is_409(self, client, conversation):
        client.post(f"/api/conversations/{conversation}/end")
        response = client.post(
            f"/api/conversations/{conversation}/messages",
            json={"sender_id": "U1", "body": "hi"},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "conversation_ended"

    def test_duplicate_start_is_409(self, client, conversation):
        response = client.post(
            "/api/conversations",
            json={"conversation_id": conversation, "participants": [ALICE]},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "conversation_already_exists"


class TestQueryRoutes:
    """Tests for the read API."""

    def test_get_conversation(self, client, conversation):
        response = client.get(f"/api/conversations/{conversation}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "active"
        assert data["participant_count"] == 2
        assert data["participants"][1]["specialization"] == "support"

    def test_get_missing_conversation(self, client):
        assert client.get("/api/conversations/nope").status_code == 404
        assert client.get("/api/conversations/nope/history").status_code == 404

    def test_list_with_filters(self, client, conversation):
        client.post("/api/conversations", json={"conversation_id": "C2", "participants": [ALICE]})
        client.post("/api/conversations/C2/pause")

        paused = client.get("/api/conversations", params={"status": "paused"}).json()
        everyone = client.get("/api/conversations", params={"participant_id": "U1"}).json()

        assert [c["conversation_id"] for c in paused] == ["C2"]
        assert {c["conversation_id"] for c in everyone} == {"C1", "C2"}

    def test_history(self, client, conversation):
        for sender, body in [("U1", "refund please"), ("A1", "on it"), ("A1", "refund sent")]:
            client.post(
                f"/api/conversations/{conversation}/messages",
                json={"sender_id": sender, "body": body},
            )

        history = client.get(f"/api/conversations/{conversation}/history").json()
        searched = client.get(
            f"/api/conversations/{conversation}/history",
            params={"search": "REFUND", "sender_id": "A1"},
        ).json()

        assert [e["sequence"] for e in history] == [2, 3, 4]
        assert history[0]["sender_name"] == "Alice"
        assert [e["body"] for e in searched] == ["refund sent"]

    def test_statistics(self, client, conversation):
        client.post(
            f"/api/conversations/{conversation}/messages",
            json={"sender_id": "U1", "body": "hi"},
        )

        stats = client.get("/api/statistics").json()

        assert stats["total_conversations"] == 1
        assert stats["active_conversations"] == 1
        assert stats["total_messages"] == 1
        assert stats["total_participants"] == 2

    def test_invalid_pagination_is_422(self, client):
        assert client.get("/api/conversations", params={"limit": 0}).status_code == 422

    def test_naive_active_since_is_accepted(self, client, conversation):
        """Test a timestamp without offset is read as UTC instead of failing."""
        response = client.get(
            "/api/conversations", params={"active_since": "2024-01-01T00:00:00"}
        )

        assert response.status_code == 200
        assert [c["conversation_id"] for c in response.json()] == ["C1"]

    def test_filter_by_type_and_start(self, client, conversation):
        client.post(
            "/api/conversations",
            json={
                "conversation_id": "C2",
                "participants": [ALICE],
                "conversation_type": "support",
            },
        )

        support = client.get(
            "/api/conversations", params={"conversation_type": "support"}
        ).json()
        ancient = client.get(
            "/api/conversations", params={"started_before": "2000-01-01T00:00:00"}
        ).json()

        assert [c["conversation_id"] for c in support] == ["C2"]
        assert support[0]["conversation_type"] == "support"
        assert ancient == []

    def test_search(self, client, conversation):
        client.post(
            f"/api/conversations/{conversation}/messages",
            json={"sender_id": "A1", "payload": {"status": "Refunded"}, "format_type": "card"},
        )

        found = client.get("/api/conversations/search", params={"q": "refunded"}).json()
        missing = client.get("/api/conversations/search")

        assert [c["conversation_id"] for c in found] == ["C1"]
        assert missing.status_code == 422

    def test_statistics_by_type(self, client, conversation):
        stats = client.get("/api/statistics").json()
        assert stats["conversations_by_type"] == {"direct": 1}


class TestTopicAndMetadataRoutes:
    """Tests for topic and metadata commands."""

    def test_switch_and_complete_topic(self, client, conversation):
        switched = client.post(
            f"/api/conversations/{conversation}/topics",
            json={"topic_id": "t1", "name": "Refund"},
        )
        client.post(
            f"/api/conversations/{conversation}/messages",
            json={"sender_id": "U1", "body": "refund please"},
        )
        completed = client.post(
            f"/api/conversations/{conversation}/topics/t1/complete",
            json={"resolution": "refunded"},
        )

        assert switched.json()["events"][0]["event_type"] == "TopicSwitched"
        assert completed.json()["events"][0]["payload"]["resolution"] == "refunded"

        data = client.get(f"/api/conversations/{conversation}").json()
        assert data["topics"][0]["status"] == "completed"
        assert data["topics"][0]["message_count"] == 1
        assert data["current_topic_id"] is None

        by_topic = client.get(
            f"/api/conversations/{conversation}/history", params={"topic_id": "t1"}
        ).json()
        assert [e["topic_name"] for e in by_topic] == ["Refund"]

    def test_complete_unknown_topic_is_422(self, client, conversation):
        response = client.post(f"/api/conversations/{conversation}/topics/nope/complete")

        assert response.status_code == 422
        assert response.json()["code"] == "unknown_topic"

    def test_set_metadata(self, client, conversation):
        response = client.put(
            f"/api/conversations/{conversation}/metadata",
            json={"key": "priority", "value": {"level": 2}},
        )

        assert response.status_code == 200
        data = client.get(f"/api/conversations/{conversation}").json()
        assert data["metadata"] == {"priority": {"level": 2}}

    def test_unknown_conversation_type_is_422(self, client):
        response = client.post(
            "/api/conversations",
            json={"participants": [ALICE], "conversation_type": "broadcast"},
        )

        assert response.status_code == 422
