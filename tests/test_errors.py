"""
Tests for provider error classification.
"""

import pytest

from app.errors import (
    ProviderHTTPError,
    ProviderRejected,
    ProviderTransportError,
    ProviderUnreachable,
    classify_provider_error,
    explain_provider_error,
)

FROM = "+36204515510"
TO = "+16692856302"


class TestExplainProviderError:
    """Rule table matching, first match wins."""

    @pytest.mark.parametrize(
        "raw,expected_start",
        [
            ("Invalid source number.", f"Invalid source number ({FROM})"),
            ("The source number is not SMS enabled", f"Invalid source number ({FROM})"),
            ("alphanumeric sender ID required", f"Messaging Profile Error for {FROM}"),
            ("Number is not assigned to a messaging profile", f"Messaging Profile Error for {FROM}"),
            ("Invalid destination", f"Invalid destination number ({TO})"),
            ("The 'to' address is invalid", f"Invalid destination number ({TO})"),
            ("Insufficient funds", "Insufficient balance in Telnyx account"),
            ("Account balance too low", "Insufficient balance in Telnyx account"),
            ("Rate limit exceeded", "Rate limit exceeded. Please wait"),
            ("Request was throttled", "Rate limit exceeded. Please wait"),
        ],
    )
    def test_known_patterns(self, raw, expected_start):
        assert explain_provider_error(raw, FROM, TO).startswith(expected_start)

    def test_source_rule_precedes_destination_rule(self):
        message = explain_provider_error("source number not allowed to send to destination", FROM, TO)

        assert message.startswith("Invalid source number")

    def test_unmatched_error_passes_through(self):
        assert explain_provider_error("Message body is empty", FROM, TO) == "Message body is empty"


class TestClassifyProviderError:
    """Gateway exceptions to SendError."""

    def test_http_error_uses_first_error_detail(self):
        exc = ProviderHTTPError(400, {"errors": [{"detail": "Message body is empty"}, {"detail": "other"}]})

        error = classify_provider_error(exc, FROM, TO)

        assert isinstance(error, ProviderRejected)
        assert error.status_code == 400
        assert error.message == "Message body is empty"
        assert error.details == "Telnyx API Error: Message body is empty"
        assert error.to_response() == {
            "error": "Message body is empty",
            "reason": "provider_rejected",
            "details": "Telnyx API Error: Message body is empty",
            "from": FROM,
            "to": TO,
        }

    def test_http_error_with_non_json_body(self):
        error = classify_provider_error(ProviderHTTPError(502, None), FROM, TO)

        assert error.status_code == 502
        assert error.message == "Telnyx API error"

    def test_transport_error(self):
        error = classify_provider_error(ProviderTransportError("timed out"), FROM, TO)

        assert isinstance(error, ProviderUnreachable)
        assert error.status_code == 500
        assert error.details == "Network error: timed out"
        assert error.from_number == FROM
        assert error.to_number == TO
