"""
WhatsApp Messaging Transport

Production implementation using the WhatsApp Business Cloud (Graph) API.

Requirements:
    - WHATSAPP_PHONE_NUMBER_ID and WHATSAPP_ACCESS_TOKEN must be set
"""

import logging
from typing import Optional

import httpx

from barqueue.core.config import get_settings
from barqueue.core.exceptions import TransportFailure
from barqueue.services.notifications.base import BaseMessagingService, NotificationResult

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"


class WhatsAppService(BaseMessagingService):
    """Sends text messages through the Graph API ``/messages`` endpoint."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()

        self.phone_number_id = settings.whatsapp_phone_number_id
        self.access_token = settings.whatsapp_access_token
        self.url = (
            f"{GRAPH_BASE_URL}/{settings.whatsapp_api_version}/"
            f"{self.phone_number_id}/messages"
        )
        self._client = client or httpx.AsyncClient(timeout=settings.transport_timeout_seconds)

        if not (self.phone_number_id and self.access_token):
            logger.warning("WhatsApp credentials not configured")
        else:
            logger.info("WhatsAppService initialized")

    @property
    def provider_name(self) -> str:
        return "whatsapp-cloud"

    @property
    def channel(self) -> str:
        return "whatsapp"

    async def send_text(self, to: str, body: str) -> NotificationResult:
        if not (self.phone_number_id and self.access_token):
            raise TransportFailure(self.provider_name, to, "WhatsApp not configured")

        # Graph API wants the number without the leading +
        recipient = to.lstrip("+")
        payload = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "text": {"body": body},
        }

        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as e:
            raise TransportFailure(self.provider_name, to, str(e)) from e

        if response.status_code >= 400:
            raise TransportFailure(
                self.provider_name,
                to,
                response.text[:200],
                status_code=response.status_code,
            )

        messages = response.json().get("messages") or [{}]
        message_id = messages[0].get("id")
        logger.info(f"WhatsApp sent to {to}: {message_id}")

        return NotificationResult(
            success=True,
            recipient=to,
            message_id=message_id,
            provider=self.provider_name,
        )

    async def health_check(self) -> bool:
        return bool(self.phone_number_id and self.access_token)

    async def close(self) -> None:
        await self._client.aclose()
