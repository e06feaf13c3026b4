"""
Business line registry.

The console sends from and receives on a small, fixed set of phone numbers.
They are read from settings once at startup and never change afterwards.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence

from app.config import Settings, settings

logger = logging.getLogger(__name__)

# Destination prefixes that prefer a line from the same country
PREFERRED_PREFIXES = ("+36", "+1")

UNKNOWN_LINE = "Unknown Line"


@dataclass(frozen=True)
class BusinessLine:
    name: str
    number: str
    provider_profile_id: Optional[str] = None


class LineRegistry:
    """Ordered, immutable collection of configured business lines."""

    def __init__(self, lines: Sequence[BusinessLine]):
        if not lines:
            raise ValueError("At least one business line must be configured")
        self._lines = tuple(lines)

    @property
    def lines(self) -> tuple:
        return self._lines

    @property
    def default(self) -> BusinessLine:
        return self._lines[0]

    def line_for_number(self, number: Optional[str]) -> Optional[BusinessLine]:
        """Exact match of a phone number against the configured lines."""
        for line in self._lines:
            if line.number == number:
                return line
        return None

    def display_name(self, number: Optional[str], default: str) -> str:
        line = self.line_for_number(number)
        return line.name if line else default

    def recommended_line(self, destination: Optional[str]) -> BusinessLine:
        """
        Pick the line to send from for a destination number.

        +36 destinations get the first Hungarian line, +1 destinations the
        first North American line. Everything else, and any preferred prefix
        without a matching line, falls back to the first configured line.
        """
        if not destination:
            return self.default

        for prefix in PREFERRED_PREFIXES:
            if destination.startswith(prefix):
                for line in self._lines:
                    if line.number.startswith(prefix):
                        return line
                break

        return self.default


def load_business_lines(config: Settings) -> LineRegistry:
    """Build the registry from settings, in HU Main, HU Sec, US Line order."""
    lines = [
        BusinessLine("HU Main", config.HU_MAIN_NUMBER, config.HU_MAIN_PROFILE_ID),
        BusinessLine("HU Sec", config.HU_SEC_NUMBER, config.HU_SEC_PROFILE_ID),
        BusinessLine("US Line", config.US_LINE_NUMBER, config.US_LINE_PROFILE_ID),
    ]
    logger.debug(f"Loaded business lines: {[line.number for line in lines]}")
    return LineRegistry(lines)


@lru_cache()
def get_line_registry() -> LineRegistry:
    """FastAPI dependency returning the process-wide line registry."""
    return load_business_lines(settings)
