"""
Unit and integration tests for the WhatsApp Logger HTTP surface.
"""
import json

import pytest
from fastapi.testclient import TestClient

from wa_logger.main import app
from wa_logger.api.deps import get_dispatcher, get_transport
from wa_logger.api.metrics import record_ingest_outcome, reset_metrics
from wa_logger.core.config import Settings, get_settings
from wa_logger.core.database import get_db
from wa_logger.core.security import compute_signature
from wa_logger.pipeline.contacts import save_contact_info
from wa_logger.pipeline.dispatcher import EventDispatcher
from wa_logger.pipeline.groups import save_group_info
from wa_logger.pipeline.metadata_queue import GroupMetadataQueue
from wa_logger.transport.base import TransportError


# Test configuration
TEST_SECRET = "test-secret-key-12345"
ALICE = "15550000001@s.whatsapp.net"
BOB = "15550000002@s.whatsapp.net"
GROUP = "120363012345678901@g.us"


def get_test_settings(**overrides) -> Settings:
    """Override settings for testing."""
    values = {
        "webhook_secret": TEST_SECRET,
        "log_level": "DEBUG",
        "log_format": "text",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="function")
def test_db(engine, session_factory, resolver, transport, recorded_sleeps):
    """Point every dependency at a fresh database and a fake transport."""
    settings = get_test_settings()
    dispatcher = EventDispatcher(
        session_factory,
        resolver,
        GroupMetadataQueue(transport.fetch_group_metadata, sleep=recorded_sleeps),
        account_name="Me",
        on_result=record_ingest_outcome,
    )

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_transport] = lambda: transport
    reset_metrics()

    yield engine

    app.dependency_overrides.clear()


@pytest.fixture
def client(test_db):
    """Create a test client."""
    return TestClient(app)


def sign_payload(payload, secret: str = TEST_SECRET) -> str:
    """Generate HMAC-SHA256 signature for a payload."""
    body = json.dumps(payload).encode("utf-8")
    return compute_signature(secret, body)


def post_event(client, event_name: str, payload):
    return client.post(
        f"/events/{event_name}",
        content=json.dumps(payload),
        headers={
            "Content-Type": "application/json",
            "X-Signature": sign_payload(payload),
        }
    )


def upsert(*messages, batch_type: str = "notify") -> dict:
    return {"type": batch_type, "messages": list(messages)}


def text_message(message_id: str, text: str, sender: str = ALICE, ts: int = 1700000000, name: str = "Alice") -> dict:
    return {
        "key": {"id": message_id, "remoteJid": sender, "fromMe": False},
        "pushName": name,
        "messageTimestamp": ts,
        "message": {"conversation": text},
    }


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_reports_ok_with_time(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "OK"
        assert len(data["timestamp"]) == 19

    def test_liveness_always_returns_ok(self, client):
        """GET /health/live should always return 200."""
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_readiness_returns_ok_when_configured(self, client):
        """GET /health/ready should return 200 when properly configured."""
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["webhook_secret"] == "ok"

    def test_readiness_fails_without_secret(self, client):
        app.dependency_overrides[get_settings] = lambda: get_test_settings(webhook_secret=None)
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["webhook_secret"] == "not configured"


class TestEventEndpoint:
    """Tests for POST /events/{event_name}."""

    def test_event_requires_signature(self, client):
        """POST without signature returns 401."""
        response = client.post(
            "/events/messages.upsert",
            content=json.dumps(upsert(text_message("M1", "Hello"))),
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "invalid signature"

    def test_event_rejects_invalid_signature(self, client):
        payload = upsert(text_message("M1", "Hello"))
        response = client.post(
            "/events/messages.upsert",
            content=json.dumps(payload),
            headers={
                "Content-Type": "application/json",
                "X-Signature": sign_payload(payload, secret="wrong-secret")
            }
        )
        assert response.status_code == 401

    def test_event_rejects_invalid_json(self, client):
        body = b"{not json"
        response = client.post(
            "/events/messages.upsert",
            content=body,
            headers={"X-Signature": compute_signature(TEST_SECRET, body)}
        )
        assert response.status_code == 422

    def test_messages_upsert(self, client):
        response = post_event(client, "messages.upsert", upsert(text_message("M1", "Hello"), text_message("M2", "Hi")))
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "event": "messages.upsert", "processed": 2}

        data = client.get("/messages").json()
        assert data["total"] == 2

    def test_redelivery_is_idempotent(self, client):
        """Duplicate messages return ok and are stored once."""
        payload = upsert(text_message("dup-1", "Hello"))
        assert post_event(client, "messages.upsert", payload).status_code == 200
        assert post_event(client, "messages.upsert", payload).status_code == 200

        assert client.get("/messages").json()["total"] == 1

    def test_unsupported_event_is_acknowledged(self, client):
        response = post_event(client, "presence.update", {"id": ALICE})
        assert response.status_code == 200
        assert response.json()["processed"] == 0

    def test_reaction_and_receipt_attach_to_message(self, client):
        post_event(client, "messages.upsert", upsert(text_message("M1", "Hello")))
        post_event(client, "messages.reaction", [
            {"key": {"id": "M1", "remoteJid": ALICE}, "reaction": {"text": "👍", "senderTimestampMs": 1700000005000}}
        ])
        post_event(client, "message-receipt.update", [
            {"key": {"id": "M1", "remoteJid": ALICE}, "receipt": {"type": "read", "readTimestamp": 1700000010}}
        ])

        response = client.get("/messages/M1")
        assert response.status_code == 200
        data = response.json()
        assert data["reactions"] == [
            {"message_id": "M1", "from_jid": ALICE, "reaction_text": "👍", "timestamp": "2023-11-14 22:13:25"}
        ]
        assert data["statuses"][0]["status"] == "read"
        assert data["statuses"][0]["timestamp"] == "2023-11-14 22:13:30"

    def test_contacts_update(self, client):
        response = post_event(client, "contacts.update", [{"id": BOB, "notify": "Bobby"}, {"notify": "no id"}])
        assert response.json()["processed"] == 2

        assert client.get(f"/contacts/{BOB}").json()["notify"] == "Bobby"

    def test_groups_update_is_queued(self, client):
        response = post_event(client, "groups.update", [{"id": GROUP, "subject": "partial"}])
        assert response.status_code == 200
        assert response.json()["processed"] == 1


class TestMessagesEndpoint:
    """Tests for GET /messages."""

    def _create_messages(self, client, count: int = 5):
        """Helper to create test messages."""
        senders = [ALICE, BOB, "15550000003@s.whatsapp.net"]
        messages = [
            text_message(f"msg-{i}", f"Message {i}", sender=senders[i % 3], ts=1700000000 + i * 60)
            for i in range(count)
        ]
        post_event(client, "messages.upsert", upsert(*messages))

    def test_messages_empty_list(self, client):
        """GET /messages returns empty list when no messages."""
        response = client.get("/messages")
        assert response.status_code == 200
        data = response.json()
        assert data["data"] == []
        assert data["total"] == 0
        assert data["limit"] == 50
        assert data["offset"] == 0

    def test_messages_pagination(self, client):
        """GET /messages supports pagination."""
        self._create_messages(client, 10)

        response = client.get("/messages?limit=3&offset=0")
        data = response.json()
        assert [m["message_id"] for m in data["data"]] == ["msg-0", "msg-1", "msg-2"]
        assert data["total"] == 10

        response = client.get("/messages?limit=3&offset=3")
        assert [m["message_id"] for m in response.json()["data"]] == ["msg-3", "msg-4", "msg-5"]

    def test_messages_filter_by_sender(self, client):
        self._create_messages(client, 6)
        response = client.get("/messages", params={"sender": BOB})
        data = response.json()
        assert data["total"] == 2
        assert all(m["sender"] == BOB for m in data["data"])

    def test_messages_filter_by_since(self, client):
        self._create_messages(client, 5)
        response = client.get("/messages", params={"since": "2023-11-14T22:15:20Z"})
        data = response.json()
        assert [m["message_id"] for m in data["data"]] == ["msg-2", "msg-3", "msg-4"]

    def test_messages_invalid_since(self, client):
        assert client.get("/messages", params={"since": "yesterday"}).status_code == 422

    def test_messages_text_search(self, client):
        self._create_messages(client, 5)
        response = client.get("/messages", params={"q": "message 3"})
        data = response.json()
        assert data["total"] == 1
        assert data["data"][0]["text"] == "Message 3"

    def test_messages_filter_by_type(self, client):
        self._create_messages(client, 2)
        assert client.get("/messages", params={"message_type": "text"}).json()["total"] == 2
        assert client.get("/messages", params={"message_type": "image"}).json()["total"] == 0

    def test_message_not_found(self, client):
        assert client.get("/messages/missing").status_code == 404


class TestDirectoryEndpoints:
    """Tests for /contacts and /groups."""

    def test_contacts(self, client, session_factory):
        with session_factory() as db:
            save_contact_info(db, {"id": ALICE, "name": "Alice", "labels": ["vip"]})
            save_contact_info(db, {"id": BOB, "notify": "Bob"})

        data = client.get("/contacts").json()
        assert [c["jid"] for c in data] == [ALICE, BOB]
        assert data[0]["labels"] == ["vip"]
        assert client.get("/contacts", params={"q": "bob"}).json()[0]["jid"] == BOB
        assert client.get("/contacts/unknown@s.whatsapp.net").status_code == 404

    def test_group_with_participants(self, client, session_factory):
        with session_factory() as db:
            save_contact_info(db, {"id": ALICE, "name": "Alice", "imgUrl": "https://pps.example/a.jpg"})
            save_group_info(db, {
                "id": GROUP,
                "subject": "Weekend Hikers",
                "participants": [{"id": ALICE, "admin": "superadmin"}, {"id": BOB}],
            })

        group = client.get(f"/groups/{GROUP}").json()
        assert group["group_name"] == "Weekend Hikers"
        assert group["participant_count"] == 2
        assert [g["group_id"] for g in client.get("/groups").json()] == [GROUP]

        participants = client.get(f"/groups/{GROUP}/participants").json()
        assert participants[0]["participant_id"] == ALICE
        assert participants[0]["admin_level"] == "superadmin"
        assert participants[0]["name"] == "Alice"
        assert participants[0]["img_url"] == "https://pps.example/a.jpg"
        assert participants[1]["participant_id"] == BOB

    def test_group_not_found(self, client):
        assert client.get("/groups/none@g.us").status_code == 404
        assert client.get("/groups/none@g.us/participants").status_code == 404


class TestSendEndpoints:
    """Tests for the /api send surface."""

    def test_send_text(self, client, transport):
        response = client.post("/api/text", json={"jid": ALICE, "message": "Hello"})
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert transport.sent == [(ALICE, {"text": "Hello"})]

    def test_send_text_missing_fields(self, client, transport):
        response = client.post("/api/text", json={"jid": ALICE})
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert transport.sent == []

    def test_send_text_transport_failure(self, client, transport):
        transport.send_error = TransportError("socket closed")
        response = client.post("/api/text", json={"jid": ALICE, "message": "Hello"})
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to send message"
        assert response.json()["details"] == "socket closed"

    def test_send_without_transport(self, client):
        app.dependency_overrides[get_transport] = lambda: None
        response = client.post("/api/text", json={"jid": ALICE, "message": "Hello"})
        assert response.status_code == 503

    def test_send_media_url(self, client, transport):
        response = client.post("/api/media", json={
            "jid": ALICE, "media": "https://cdn.example/p.jpg", "type": "IMAGE", "caption": "look"
        })
        assert response.status_code == 200
        jid, payload = transport.sent[0]
        assert payload == {"image": {"url": "https://cdn.example/p.jpg"}, "caption": "look", "mimetype": "image/jpeg"}

    def test_send_media_base64_document(self, client, transport):
        response = client.post("/api/media", json={
            "jid": ALICE, "media": "data:application/pdf;base64,aGVsbG8=", "type": "document", "filename": "a.pdf"
        })
        assert response.status_code == 200
        _, payload = transport.sent[0]
        assert payload["document"] == {"base64": "aGVsbG8="}
        assert payload["fileName"] == "a.pdf"
        assert payload["mimetype"] == "application/pdf"

    def test_send_media_invalid_base64(self, client, transport):
        response = client.post("/api/media", json={"jid": ALICE, "media": "not base64!!", "type": "image"})
        assert response.status_code == 400
        assert transport.sent == []

    def test_send_media_invalid_type(self, client):
        response = client.post("/api/media", json={"jid": ALICE, "media": "https://x/y", "type": "gif"})
        assert response.status_code == 400

    def test_send_buttons(self, client, transport):
        response = client.post("/api/buttons", json={
            "jid": ALICE, "text": "Pick one", "buttons": [{"id": "yes", "text": "Yes"}, {"id": "no", "text": "No"}]
        })
        assert response.status_code == 200
        _, payload = transport.sent[0]
        assert payload["buttons"][0] == {"buttonId": "yes", "buttonText": {"displayText": "Yes"}, "type": 1}
        assert payload["headerType"] == 1

    def test_send_buttons_requires_buttons(self, client):
        response = client.post("/api/buttons", json={"jid": ALICE, "text": "Pick one", "buttons": []})
        assert response.status_code == 400

    def test_send_list(self, client, transport):
        sections = [{"title": "Menu", "rows": [{"title": "Tea", "rowId": "tea"}]}]
        response = client.post("/api/list", json={
            "jid": ALICE, "text": "Order", "buttonText": "Open", "sections": sections
        })
        assert response.status_code == 200
        _, payload = transport.sent[0]
        assert payload["buttonText"] == "Open"
        assert payload["sections"] == sections
        assert payload["listType"] == 1

    def test_connection_status(self, client):
        data = client.get("/api/status").json()["data"]
        assert data["connected"] is True
        assert data["user"]["id"] == "15550001111@s.whatsapp.net"


class TestStatsEndpoint:
    """Tests for GET /stats."""

    def test_stats_empty(self, client):
        response = client.get("/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["total_messages"] == 0
        assert data["senders_count"] == 0
        assert data["messages_per_sender"] == []
        assert data["first_message_time"] is None

    def test_stats_with_messages(self, client):
        post_event(client, "messages.upsert", upsert(
            text_message("M1", "one", sender=ALICE, ts=1700000000),
            text_message("M2", "two", sender=ALICE, ts=1700000060),
            text_message("M3", "three", sender=BOB, ts=1700000120),
        ))
        post_event(client, "contacts.update", [{"id": ALICE, "name": "Alice"}])

        data = client.get("/stats").json()
        assert data["total_messages"] == 3
        assert data["total_contacts"] == 1
        assert data["senders_count"] == 2
        assert data["messages_per_type"] == {"text": 3}
        assert data["messages_per_sender"][0] == {"sender": ALICE, "count": 2}
        assert data["first_message_time"] == "2023-11-14 22:13:20"
        assert data["last_message_time"] == "2023-11-14 22:15:20"


class TestMetricsEndpoint:
    """Tests for GET /metrics."""

    def test_metrics_returns_prometheus_format(self, client):
        """GET /metrics returns Prometheus format."""
        client.get("/health/live")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert 'http_requests_total{method="GET",path="/health/live",status="200"} 1' in response.text

    def test_requests_are_keyed_by_route_template(self, client):
        client.get("/messages/M1")
        client.get("/messages/M2")
        client.get("/contacts/15550000001@s.whatsapp.net")

        content = client.get("/metrics").text
        assert 'http_requests_total{method="GET",path="/messages/{message_id}",status="404"} 2' in content
        assert 'path="/contacts/{jid}"' in content
        assert "/messages/M1" not in content

    def test_ingest_outcomes_are_counted(self, client):
        payload = upsert(text_message("M1", "Hello"))
        post_event(client, "messages.upsert", payload)
        post_event(client, "messages.upsert", payload)

        content = client.get("/metrics").text
        assert 'ingest_events_total{event="messages.upsert",result="created"} 1' in content
        assert 'ingest_events_total{event="messages.upsert",result="duplicate"} 1' in content


class TestSignatureComputation:
    """Tests for HMAC-SHA256 signature computation."""

    def test_compute_signature(self):
        """Test signature computation."""
        signature = compute_signature("test-secret", b'{"type": "notify"}')

        # Verify it's a valid hex string
        assert len(signature) == 64
        assert all(c in "0123456789abcdef" for c in signature)

    def test_signature_is_deterministic(self):
        """Same input produces same signature."""
        body = b'{"type": "notify"}'
        assert compute_signature("test-secret", body) == compute_signature("test-secret", body)

    def test_different_secrets_produce_different_signatures(self):
        """Different secrets produce different signatures."""
        body = b'{"type": "notify"}'
        assert compute_signature("secret1", body) != compute_signature("secret2", body)
