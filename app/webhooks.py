"""
Telnyx webhook reconciliation.

Callbacks are first classified into a closed set of event variants, then
dispatched. Telnyx may deliver the same callback more than once, so every
branch must be safe to replay.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy.orm import Session

from app.errors import MissingPhoneNumbers
from app.lines import UNKNOWN_LINE, LineRegistry
from app.models import ActionStatus, MessageDirection, MessageStatus
from app.schemas import WebhookEnvelope
from app.storage import (
    create_message,
    log_action,
    message_exists,
    touch_contact,
    update_message_status,
)

logger = logging.getLogger(__name__)

ACTION = "WEBHOOK"

MESSAGE_RECEIVED = "message.received"

STATUS_EVENTS = {
    "message.finalized": MessageStatus.DELIVERED,
    "message.sent": MessageStatus.SENT,
    "message.failed": MessageStatus.FAILED,
}


@dataclass(frozen=True)
class MessageReceived:
    from_number: Optional[str]
    to_number: Optional[str]
    text: str
    provider_message_id: Optional[str] = None

    kind = "received"


@dataclass(frozen=True)
class StatusChanged:
    event_type: str
    provider_message_id: Optional[str]
    status: MessageStatus

    kind = "status"


@dataclass(frozen=True)
class UnhandledEvent:
    event_type: Optional[str]

    kind = "ignored"


WebhookEvent = Union[MessageReceived, StatusChanged, UnhandledEvent]


def _phone_number(endpoint: Any) -> Optional[str]:
    if isinstance(endpoint, dict):
        return endpoint.get("phone_number") or None
    return None


def classify_event(envelope: WebhookEnvelope) -> WebhookEvent:
    """
    Turn a Telnyx envelope into one of the known event variants.

    Unknown or missing event types become UnhandledEvent.
    """
    data = envelope.data
    if data is None or not isinstance(data.event_type, str) or not data.event_type:
        return UnhandledEvent(event_type=None)

    event_type = data.event_type
    if event_type != MESSAGE_RECEIVED and event_type not in STATUS_EVENTS:
        return UnhandledEvent(event_type=event_type)

    # A non-object payload carries nothing usable
    payload = data.payload if isinstance(data.payload, dict) else {}

    if event_type == MESSAGE_RECEIVED:
        recipients = payload.get("to")
        first_recipient = recipients[0] if isinstance(recipients, list) and recipients else None
        return MessageReceived(
            from_number=_phone_number(payload.get("from")),
            to_number=_phone_number(first_recipient),
            text=payload.get("text") or "",
            provider_message_id=payload.get("id") or None,
        )

    return StatusChanged(
        event_type=event_type,
        provider_message_id=payload.get("id") or None,
        status=STATUS_EVENTS[event_type],
    )


def _handle_received(db: Session, registry: LineRegistry, event: MessageReceived) -> str:
    if not event.from_number or not event.to_number:
        log_action(db, ACTION, "Invalid webhook payload - missing phone numbers", ActionStatus.ERROR.value)
        raise MissingPhoneNumbers()

    line_name = registry.display_name(event.to_number, default=UNKNOWN_LINE)
    if line_name == UNKNOWN_LINE:
        logger.warning(f"Inbound SMS to unconfigured number {event.to_number}")

    message, is_duplicate = create_message(
        db,
        from_number=event.from_number,
        to_number=event.to_number,
        text=event.text,
        direction=MessageDirection.INBOUND.value,
        sender_line=line_name,
        status=MessageStatus.DELIVERED.value,
        provider_message_id=event.provider_message_id,
    )
    if is_duplicate:
        log_action(
            db,
            ACTION,
            f"Duplicate SMS {event.provider_message_id} from {event.from_number} ignored",
            ActionStatus.SUCCESS.value,
        )
        return "duplicate"

    touch_contact(db, event.from_number)
    log_action(db, ACTION, f"Received SMS from {event.from_number} on {line_name}", ActionStatus.SUCCESS.value)
    return "received"


def _handle_status(db: Session, event: StatusChanged) -> str:
    # Some Telnyx events carry no trackable id
    if not event.provider_message_id:
        logger.debug(f"{event.event_type} without message id, nothing to update")
        return "no_message_id"

    status = event.status.value
    if update_message_status(db, event.provider_message_id, status):
        log_action(
            db,
            ACTION,
            f"Message {event.provider_message_id} status updated to: {status}",
            ActionStatus.SUCCESS.value,
        )
        return "status_updated"

    if message_exists(db, event.provider_message_id):
        return "status_unchanged"

    logger.debug(f"No stored message for provider id {event.provider_message_id}")
    return "unknown_message"


def handle_event(db: Session, registry: LineRegistry, event: WebhookEvent) -> str:
    """
    Apply one classified webhook event.

    Returns:
        Result tag: received, duplicate, status_updated, status_unchanged,
        unknown_message, no_message_id or ignored

    Raises:
        MissingPhoneNumbers: message.received without from/to numbers
    """
    if isinstance(event, MessageReceived):
        return _handle_received(db, registry, event)
    if isinstance(event, StatusChanged):
        return _handle_status(db, event)

    logger.info(f"Ignoring webhook event type: {event.event_type}")
    return "ignored"
