"""
Tests for the POST /webhook endpoint.

Tests cover:
- Inbound messages (message.received)
- Delivery status updates (message.finalized / sent / failed)
- Duplicate deliveries
- Unknown event types, malformed bodies and storage failures
- Send followed by a status callback
"""

import pytest

from conftest import HU_MAIN, HU_SEC, US_LINE, received_event, status_event
from app.models import ActionLog, Contact, Message
from app.storage import SessionLocal


def stored(model):
    with SessionLocal() as session:
        return session.query(model).all()


def seed_outbound(provider_message_id="telnyx-msg-1", status="sent"):
    """Insert an outbound message directly, as the send pipeline would."""
    with SessionLocal() as session:
        session.add(Message(
            from_number=HU_MAIN,
            to_number=US_LINE,
            text="hi",
            direction="outbound",
            sender_line="HU Main",
            timestamp="2026-01-01T10:00:00.000000Z",
            provider_message_id=provider_message_id,
            status=status,
        ))
        session.commit()


class TestWebhookMessageReceived:
    """Inbound SMS handling."""

    def test_inbound_message_is_stored(self, client):
        response = client.post("/webhook", json=received_event(US_LINE, HU_MAIN, text="reply"))

        assert response.status_code == 200
        assert response.text == "OK"

        messages = stored(Message)
        assert len(messages) == 1
        message = messages[0]
        assert message.from_number == US_LINE
        assert message.to_number == HU_MAIN
        assert message.text == "reply"
        assert message.direction == "inbound"
        assert message.status == "delivered"
        assert message.sender_line == "HU Main"

    def test_inbound_message_creates_contact(self, client):
        client.post("/webhook", json=received_event(US_LINE, HU_MAIN, text="reply"))

        contacts = stored(Contact)
        assert [c.phone for c in contacts] == [US_LINE]
        assert contacts[0].name == US_LINE

    def test_inbound_on_second_line(self, client):
        client.post("/webhook", json=received_event("+36201234567", HU_SEC))

        assert stored(Message)[0].sender_line == "HU Sec"

    def test_inbound_on_unconfigured_number(self, client):
        response = client.post("/webhook", json=received_event(US_LINE, "+15550001234"))

        assert response.status_code == 200
        assert stored(Message)[0].sender_line == "Unknown Line"

    def test_missing_text_defaults_to_empty(self, client):
        body = received_event(US_LINE, HU_MAIN)
        del body["data"]["payload"]["text"]

        response = client.post("/webhook", json=body)

        assert response.status_code == 200
        assert stored(Message)[0].text == ""

    @pytest.mark.parametrize("from_number,to_number", [(None, HU_MAIN), (US_LINE, None), (None, None)])
    def test_missing_phone_numbers_returns_400(self, client, from_number, to_number):
        response = client.post("/webhook", json=received_event(from_number, to_number))

        assert response.status_code == 400
        assert response.text == "Invalid payload"
        assert stored(Message) == []
        assert stored(Contact) == []

        errors = [entry for entry in stored(ActionLog) if entry.status == "error"]
        assert [entry.details for entry in errors] == ["Invalid webhook payload - missing phone numbers"]

    def test_empty_recipient_list_returns_400(self, client):
        body = received_event(US_LINE, HU_MAIN)
        body["data"]["payload"]["to"] = []

        response = client.post("/webhook", json=body)

        assert response.status_code == 400

    def test_redelivered_inbound_message_is_stored_once(self, client):
        body = received_event(US_LINE, HU_MAIN, message_id="inbound-42")

        first = client.post("/webhook", json=body)
        second = client.post("/webhook", json=body)

        assert first.status_code == 200
        assert second.status_code == 200
        assert len(stored(Message)) == 1
        assert [e.details for e in stored(ActionLog) if e.action == "WEBHOOK"] == [
            f"Received SMS from {US_LINE} on HU Main",
            f"Duplicate SMS inbound-42 from {US_LINE} ignored",
        ]

    def test_inbound_success_is_logged(self, client):
        client.post("/webhook", json=received_event(US_LINE, HU_MAIN))

        entries = stored(ActionLog)
        assert len(entries) == 1
        assert entries[0].status == "success"
        assert entries[0].details == f"Received SMS from {US_LINE} on HU Main"


class TestWebhookStatusUpdates:
    """Delivery status callbacks for outbound messages."""

    @pytest.mark.parametrize(
        "event_type,expected",
        [
            ("message.finalized", "delivered"),
            ("message.sent", "sent"),
            ("message.failed", "failed"),
        ],
    )
    def test_status_mapping(self, client, event_type, expected):
        seed_outbound(status="pending")

        response = client.post("/webhook", json=status_event(event_type, "telnyx-msg-1"))

        assert response.status_code == 200
        message = stored(Message)[0]
        assert message.status == expected
        assert message.status_updated is not None

    def test_update_is_logged(self, client):
        seed_outbound()

        client.post("/webhook", json=status_event("message.finalized", "telnyx-msg-1"))

        entries = stored(ActionLog)
        assert [e.details for e in entries] == ["Message telnyx-msg-1 status updated to: delivered"]

    def test_duplicate_delivery_is_idempotent(self, client):
        seed_outbound()
        body = status_event("message.finalized", "telnyx-msg-1")

        client.post("/webhook", json=body)
        once = stored(Message)[0]
        response = client.post("/webhook", json=body)
        twice = stored(Message)[0]

        assert response.status_code == 200
        assert twice.status == once.status == "delivered"
        assert twice.status_updated == once.status_updated

    def test_unknown_message_id_is_acknowledged(self, client):
        seed_outbound()

        response = client.post("/webhook", json=status_event("message.failed", "does-not-exist"))

        assert response.status_code == 200
        assert response.text == "OK"
        message = stored(Message)[0]
        assert message.status == "sent"
        assert message.status_updated is None
        assert stored(ActionLog) == []

    def test_missing_message_id_is_a_noop(self, client):
        seed_outbound()

        response = client.post("/webhook", json=status_event("message.finalized", None))

        assert response.status_code == 200
        assert stored(Message)[0].status == "sent"
        assert stored(ActionLog) == []

    def test_inbound_messages_are_not_updated(self, client):
        client.post("/webhook", json=received_event(US_LINE, HU_MAIN, message_id="inbound-7"))

        client.post("/webhook", json=status_event("message.failed", "inbound-7"))

        assert stored(Message)[0].status == "delivered"


class TestWebhookOtherEvents:
    """Events that are acknowledged without side effects, and bad bodies."""

    def test_unknown_event_type_is_acknowledged(self, client):
        response = client.post(
            "/webhook",
            json={"data": {"event_type": "number_order.complete", "payload": {"id": "x"}}},
        )

        assert response.status_code == 200
        assert response.text == "OK"
        assert stored(Message) == []
        assert stored(ActionLog) == []

    @pytest.mark.parametrize(
        "event_type,payload",
        [("message.new_kind", None), ("call.initiated", [1, 2]), ("number_order.complete", "done")],
    )
    def test_unknown_event_with_any_payload_shape_is_acknowledged(self, client, event_type, payload):
        response = client.post("/webhook", json={"data": {"event_type": event_type, "payload": payload}})

        assert response.status_code == 200
        assert response.text == "OK"
        assert stored(Message) == []
        assert stored(ActionLog) == []

    def test_status_event_with_non_object_payload_is_a_noop(self, client):
        seed_outbound()

        response = client.post("/webhook", json={"data": {"event_type": "message.finalized", "payload": None}})

        assert response.status_code == 200
        assert stored(Message)[0].status == "sent"
        assert stored(ActionLog) == []

    def test_received_event_with_non_object_payload_returns_400(self, client):
        response = client.post("/webhook", json={"data": {"event_type": "message.received", "payload": [1]}})

        assert response.status_code == 400
        assert response.text == "Invalid payload"
        assert stored(Message) == []

    def test_envelope_without_data_is_acknowledged(self, client):
        response = client.post("/webhook", json={})

        assert response.status_code == 200

    def test_storage_failure_returns_500_and_is_logged(self, client, monkeypatch):
        seed_outbound()

        def broken_update(*args, **kwargs):
            raise RuntimeError("database is locked")

        monkeypatch.setattr("app.webhooks.update_message_status", broken_update)

        response = client.post("/webhook", json=status_event("message.sent", "telnyx-msg-1"))

        assert response.status_code == 500
        assert response.text == "Error processing webhook"
        errors = [e.details for e in stored(ActionLog) if e.status == "error"]
        assert errors == ["Webhook processing error: database is locked"]

    def test_invalid_json_returns_400(self, client):
        response = client.post(
            "/webhook",
            content="not valid json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert [e.status for e in stored(ActionLog)] == ["error"]

    def test_non_object_body_returns_400(self, client):
        response = client.post("/webhook", json=["message.received"])

        assert response.status_code == 400

    def test_webhook_does_not_require_session(self, client):
        response = client.post("/webhook", json=received_event(US_LINE, HU_MAIN))

        assert response.status_code == 200


class TestSendThenDeliver:
    """End-to-end: an outbound send later confirmed by Telnyx."""

    def test_finalized_event_marks_sent_message_delivered(self, auth_client, telnyx):
        telnyx.response = (200, {"data": {"id": "40385f64-5717-4562-b3fc-2c963f66afa6"}})

        response = auth_client.post(
            "/send",
            json={"from_number": HU_MAIN, "to_number": US_LINE, "message_content": "hi"},
        )
        assert response.status_code == 200
        assert stored(Message)[0].status == "sent"

        response = auth_client.post(
            "/webhook",
            json=status_event("message.finalized", "40385f64-5717-4562-b3fc-2c963f66afa6"),
        )

        assert response.status_code == 200
        messages = stored(Message)
        assert len(messages) == 1
        assert messages[0].status == "delivered"
        assert messages[0].from_number == HU_MAIN
        assert messages[0].to_number == US_LINE
        assert messages[0].text == "hi"
