"""
Twilio SMS Transport

Production SMS implementation using the Twilio REST API.
The Twilio client is synchronous, so each send runs in a worker thread to
keep the event loop free.
"""

import asyncio
import logging

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioClient

from barqueue.core.config import get_settings
from barqueue.core.exceptions import TransportFailure
from barqueue.services.notifications.base import BaseMessagingService, NotificationResult

logger = logging.getLogger(__name__)


class TwilioSMSService(BaseMessagingService):
    """SMS transport backed by Twilio."""

    def __init__(self):
        settings = get_settings()

        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                http_client=TwilioHttpClient(timeout=settings.transport_timeout_seconds),
            )
            self.twilio_from_number = settings.twilio_phone_number
            logger.info("TwilioSMSService initialized")
        else:
            self.twilio_client = None
            self.twilio_from_number = None
            logger.warning("Twilio credentials not configured")

    @property
    def provider_name(self) -> str:
        return "twilio"

    @property
    def channel(self) -> str:
        return "sms"

    async def send_text(self, to: str, body: str) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            raise TransportFailure("twilio", to, "Twilio not configured")
        if not self.twilio_from_number:
            raise TransportFailure("twilio", to, "Missing TWILIO_PHONE_NUMBER")

        try:
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=body,
                from_=self.twilio_from_number,
                to=to,
            )
        except TwilioRestException as e:
            raise TransportFailure("twilio", to, e.msg, status_code=e.status) from e
        except TwilioException as e:
            raise TransportFailure("twilio", to, str(e)) from e

        logger.info(f"SMS sent to {to}: {result.sid}")

        return NotificationResult(
            success=True,
            recipient=to,
            message_id=result.sid,
            provider="twilio"
        )

    async def health_check(self) -> bool:
        return self.twilio_client is not None
