"""
Utility functions for the SMS console.
"""

import re
from datetime import datetime, timezone
from typing import Optional

# "+" followed by a non-zero digit and 1-14 further digits
E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def is_e164(number: Optional[str]) -> bool:
    """
    Check whether a phone number is in E.164 format.

    Args:
        number: Phone number string, e.g. "+36204515510"

    Returns:
        True if the number matches the E.164 pattern, False otherwise
    """
    if not number:
        return False
    return E164_PATTERN.match(number) is not None


def utc_now() -> str:
    """
    Current server time as an ISO-8601 UTC string with microseconds.

    Lexical order of these strings is chronological order.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
