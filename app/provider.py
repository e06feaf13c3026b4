"""
Telnyx messaging gateway.
"""

import logging
from functools import lru_cache
from typing import Optional

import httpx

from app.config import settings
from app.errors import ProviderHTTPError, ProviderTransportError

logger = logging.getLogger(__name__)


class TelnyxGateway:
    """Thin async client for the Telnyx `POST /v2/messages` endpoint."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.telnyx.com/v2/messages",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self._transport = transport

    async def send_message(self, from_number: str, to_number: str, text: str) -> dict:
        """
        Submit one SMS to Telnyx.

        Telnyx picks the messaging profile attached to from_number itself,
        so only from/to/text are sent.

        Returns:
            Decoded JSON response body

        Raises:
            ProviderHTTPError: Telnyx rejected the request
            ProviderTransportError: no response was received
        """
        payload = {"from": from_number, "to": to_number, "text": text}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info(f"Submitting SMS to Telnyx: from={from_number}, to={to_number}")
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Telnyx request failed: {e}")
            raise ProviderTransportError(str(e) or e.__class__.__name__) from e

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        if response.is_error:
            logger.error(f"Telnyx API error {response.status_code}: {body}")
            raise ProviderHTTPError(response.status_code, body)

        logger.debug(f"Telnyx accepted message: {body}")
        return body


@lru_cache()
def get_gateway() -> TelnyxGateway:
    """FastAPI dependency returning the configured Telnyx gateway."""
    return TelnyxGateway(api_key=settings.TELNYX_API_KEY, api_url=settings.TELNYX_API_URL)
