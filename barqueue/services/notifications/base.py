"""
Notification Transport Abstract Base Classes

Defines the interface for sending text messages (WhatsApp, SMS) and push
notifications. Supports both Mock (development) and Real (production)
implementations.

Transports raise TransportFailure when the provider rejects or cannot be
reached; they never retry. Retrying, logging and isolating failures is the
dispatcher's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from a successful send."""
    success: bool
    recipient: str
    message_id: Optional[str] = None
    provider: str = "unknown"


class BaseMessagingService(ABC):
    """Abstract base class for text message transports."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @property
    @abstractmethod
    def channel(self) -> str:
        """Inbound/outbound channel this transport serves (whatsapp, sms)."""
        pass

    @abstractmethod
    async def send_text(self, to: str, body: str) -> NotificationResult:
        """
        Send a text message.

        Raises:
            TransportFailure: provider error or missing configuration
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service configuration/connectivity."""
        pass

    async def close(self) -> None:
        return None


class BasePushService(ABC):
    """Abstract base class for web push transports."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def send_push(self, player_id: str, title: str, body: str) -> NotificationResult:
        """
        Push a notification to one device.

        Raises:
            TransportFailure: with the provider's HTTP status, so callers can
                drop targets reported as gone (401/403/404/410)
        """
        pass

    async def close(self) -> None:
        return None
