"""
Outbound SMS pipeline: validate, submit to Telnyx once, record the result.

A crash between Telnyx accepting the message and the local insert leaves no
local record of a message that was actually sent. There is no intent record
to recover from that.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.errors import (
    InvalidDestinationFormat,
    InvalidSourceFormat,
    MissingFields,
    ProviderError,
    classify_provider_error,
)
from app.lines import LineRegistry
from app.models import ActionStatus, MessageDirection, MessageStatus
from app.provider import TelnyxGateway
from app.storage import create_message, log_action, touch_contact
from app.utils import is_e164

logger = logging.getLogger(__name__)

ACTION = "SEND_SMS"


def _extract_message_id(response: dict) -> Optional[str]:
    data = response.get("data") if isinstance(response, dict) else None
    if isinstance(data, dict):
        return data.get("id")
    return None


async def send_sms(
    db: Session,
    gateway: TelnyxGateway,
    registry: LineRegistry,
    from_number: Optional[str],
    to_number: Optional[str],
    text: Optional[str],
):
    """
    Send one SMS from a business line.

    Validation failures never reach Telnyx. Every outcome is written to the
    action log before returning or raising.

    Returns:
        The stored outbound Message

    Raises:
        SendError: validation or provider failure, with from/to attached
            for provider failures
    """
    if not from_number or not to_number or not text:
        log_action(db, ACTION, "Missing required fields", ActionStatus.ERROR.value)
        raise MissingFields("Missing required fields")

    if not is_e164(to_number):
        log_action(db, ACTION, f"Invalid destination number format: {to_number}", ActionStatus.ERROR.value)
        raise InvalidDestinationFormat(
            "Invalid destination number format. Must include country code (e.g., +923156780274)"
        )

    if not from_number.startswith("+") or not is_e164(from_number):
        log_action(db, ACTION, f"Invalid source number format: {from_number}", ActionStatus.ERROR.value)
        raise InvalidSourceFormat(
            f"Invalid source number ({from_number}). "
            "Must be a valid phone number in E.164 format (e.g., +36204515510)"
        )

    sender_line = registry.display_name(from_number, default=from_number)

    try:
        response = await gateway.send_message(from_number, to_number, text)
    except ProviderError as e:
        error = classify_provider_error(e, from_number, to_number)
        log_action(
            db,
            ACTION,
            f"Failed to send SMS from {from_number} to {to_number}: {error.details}",
            ActionStatus.ERROR.value,
        )
        logger.error(
            f"Sending failed: from={from_number}, to={to_number}, "
            f"reason={error.reason}, status={error.status_code}, details={error.details}"
        )
        raise error from e

    provider_message_id = _extract_message_id(response)
    if provider_message_id is None:
        logger.warning(f"Telnyx response carried no message id for send to {to_number}")

    message, _ = create_message(
        db,
        from_number=from_number,
        to_number=to_number,
        text=text,
        direction=MessageDirection.OUTBOUND.value,
        sender_line=sender_line,
        status=MessageStatus.SENT.value,
        provider_message_id=provider_message_id,
    )
    touch_contact(db, to_number)
    log_action(
        db,
        ACTION,
        f"Sent SMS from {sender_line} ({from_number}) to {to_number}",
        ActionStatus.SUCCESS.value,
    )
    logger.info(f"SMS sent from {sender_line} to {to_number}, provider_id={provider_message_id}")
    return message
