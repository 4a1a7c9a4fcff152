"""
Notification Transport Factory

Returns Mock or Real transports based on ENV_MODE.

    - ENV_MODE=development → MockMessagingService / MockPushService
    - ENV_MODE=staging|production → WhatsAppService, TwilioSMSService,
      OneSignalPushService
"""

import logging
from functools import lru_cache

from barqueue.core.config import get_settings
from barqueue.services.notifications.base import (
    BaseMessagingService,
    BasePushService,
    NotificationResult,
)
from barqueue.services.notifications.mock import MockMessagingService, MockPushService
from barqueue.services.notifications.onesignal import OneSignalPushService
from barqueue.services.notifications.twilio_sms import TwilioSMSService
from barqueue.services.notifications.whatsapp import WhatsAppService

logger = logging.getLogger(__name__)


def build_messaging_service(channel: str) -> BaseMessagingService:
    """Create a new text transport for a channel ("whatsapp" or "sms")."""
    settings = get_settings()

    if channel not in ("whatsapp", "sms"):
        raise ValueError(f"No text transport for channel {channel!r}")

    if settings.is_development:
        logger.info(f"Messaging ({channel}): Using MockMessagingService (development mode)")
        return MockMessagingService(channel=channel)

    logger.info(f"Messaging ({channel}): Using real transport ({settings.env_mode.value} mode)")
    if channel == "whatsapp":
        return WhatsAppService()
    return TwilioSMSService()


@lru_cache()
def get_messaging_service(channel: str) -> BaseMessagingService:
    """Get the shared text transport for a channel."""
    return build_messaging_service(channel)


@lru_cache()
def get_push_service() -> BasePushService:
    """Get the configured push transport."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Push Service: Using MockPushService (development mode)")
        return MockPushService()

    logger.info(f"Push Service: Using OneSignalPushService ({settings.env_mode.value} mode)")
    return OneSignalPushService()


def reset_notification_services() -> None:
    """Clear the cached transport instances."""
    get_messaging_service.cache_clear()
    get_push_service.cache_clear()


__all__ = [
    "build_messaging_service",
    "get_messaging_service",
    "get_push_service",
    "reset_notification_services",
    "BaseMessagingService",
    "BasePushService",
    "NotificationResult",
    "MockMessagingService",
    "MockPushService",
    "WhatsAppService",
    "TwilioSMSService",
    "OneSignalPushService",
]
