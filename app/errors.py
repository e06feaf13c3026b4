"""
Error taxonomy for the send pipeline, the webhook reconciler and the
Telnyx gateway.

Provider error explanations come from PROVIDER_ERROR_RULES, an ordered table
of (pattern, explanation) pairs. Matching is heuristic: it looks for keywords
in Telnyx' free-text error detail and will misfire if Telnyx rewords them.
"""

import re
from typing import Any, Callable, Optional, Tuple


# =============================================================================
# Provider Gateway Errors
# =============================================================================

class ProviderError(Exception):
    """Base class for failures talking to Telnyx."""


class ProviderHTTPError(ProviderError):
    """Telnyx answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Telnyx returned HTTP {status_code}")


class ProviderTransportError(ProviderError):
    """No response was received from Telnyx."""


# =============================================================================
# Send Pipeline Errors
# =============================================================================

class SendError(Exception):
    """
    A failed send, carrying everything the caller needs to render it.

    Attributes:
        reason: Machine-checkable failure tag
        status_code: HTTP status to answer with
        message: Human-actionable explanation
        details: Raw error context, if any
        from_number / to_number: Endpoints of the attempted send, if known
    """
    reason = "send_failed"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        from_number: Optional[str] = None,
        to_number: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.from_number = from_number
        self.to_number = to_number
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> dict:
        content = {"error": self.message, "reason": self.reason}
        if self.details is not None:
            content["details"] = self.details
        if self.from_number is not None:
            content["from"] = self.from_number
        if self.to_number is not None:
            content["to"] = self.to_number
        return content


class MissingFields(SendError):
    reason = "missing_fields"
    status_code = 400


class InvalidDestinationFormat(SendError):
    reason = "invalid_destination_format"
    status_code = 400


class InvalidSourceFormat(SendError):
    reason = "invalid_source_format"
    status_code = 400


class ProviderRejected(SendError):
    reason = "provider_rejected"


class ProviderUnreachable(SendError):
    reason = "provider_unreachable"


# =============================================================================
# Webhook Errors
# =============================================================================

class WebhookError(Exception):
    """A provider callback that cannot be processed as sent."""


class MissingPhoneNumbers(WebhookError):
    def __init__(self):
        super().__init__("Invalid webhook payload - missing phone numbers")


# =============================================================================
# Provider Error Explanations
# =============================================================================

def _source_number(from_number: str, to_number: str) -> str:
    return (
        f"Invalid source number ({from_number}). Please verify in Telnyx Portal:\n"
        "1. Go to Numbers section and verify the number is active\n"
        "2. Check that the number is enabled for SMS messaging\n"
        "3. Ensure the number is not attached to a messaging profile that only supports alphanumeric\n"
        "4. If attached to a profile, ensure the profile allows phone number as sender ID"
    )


def _messaging_profile(from_number: str, to_number: str) -> str:
    return (
        f"Messaging Profile Error for {from_number}:\n"
        "The number is attached to a messaging profile that's configured for alphanumeric sender IDs only.\n\n"
        "SOLUTION: In Telnyx Portal:\n"
        "1. Go to Messaging > Messaging Profiles\n"
        f"2. Find the profile attached to {from_number}\n"
        "3. Edit the profile and ensure it allows phone numbers as sender IDs\n"
        "4. OR remove the number from the messaging profile\n"
        "5. OR create a new profile that supports phone numbers"
    )


def _destination(from_number: str, to_number: str) -> str:
    return f"Invalid destination number ({to_number}). Please check the number format."


def _balance(from_number: str, to_number: str) -> str:
    return "Insufficient balance in Telnyx account. Please add credits."


def _rate_limit(from_number: str, to_number: str) -> str:
    return "Rate limit exceeded. Please wait a moment and try again."


# First match wins, so order matters.
PROVIDER_ERROR_RULES: Tuple[Tuple[re.Pattern, Callable[[str, str], str]], ...] = (
    (re.compile(r"source number", re.IGNORECASE), _source_number),
    (re.compile(r"alphanumeric sender ID|messaging profile", re.IGNORECASE), _messaging_profile),
    (re.compile(r"destination|\bto\b", re.IGNORECASE), _destination),
    (re.compile(r"insufficient|balance", re.IGNORECASE), _balance),
    (re.compile(r"rate limit|throttle", re.IGNORECASE), _rate_limit),
)


def explain_provider_error(raw: str, from_number: str, to_number: str) -> str:
    """Expand a raw Telnyx error detail into an actionable message."""
    for pattern, explain in PROVIDER_ERROR_RULES:
        if pattern.search(raw):
            return explain(from_number, to_number)
    return raw


def classify_provider_error(exc: ProviderError, from_number: str, to_number: str) -> SendError:
    """
    Translate a gateway exception into the SendError returned to the operator.
    """
    if isinstance(exc, ProviderHTTPError):
        body = exc.body if isinstance(exc.body, dict) else {}
        errors = body.get("errors") or []
        if errors and isinstance(errors[0], dict):
            raw = errors[0].get("detail") or errors[0].get("title") or "API Error"
            message = explain_provider_error(raw, from_number, to_number)
        else:
            raw = body.get("message") or "Telnyx API error"
            message = raw
        return ProviderRejected(
            message,
            details=f"Telnyx API Error: {raw}",
            from_number=from_number,
            to_number=to_number,
            status_code=exc.status_code,
        )

    return ProviderUnreachable(
        "No response from Telnyx API. Please check your internet connection and API key.",
        details=f"Network error: {exc}",
        from_number=from_number,
        to_number=to_number,
    )
