"""
Mock Notification Transports

Simulate WhatsApp/SMS sending and web push for development and tests.
No actual messages are sent - they are logged and recorded on the instance
so tests can assert on them.
"""

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from barqueue.core.exceptions import TransportFailure
from barqueue.services.notifications.base import (
    BaseMessagingService,
    BasePushService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


@dataclass
class SentMessage:
    to: str
    body: str
    title: Optional[str] = None


class MockMessagingService(BaseMessagingService):
    """
    Mock text transport.

    Args:
        channel: "whatsapp" or "sms"
        failure_rate: Probability of a simulated provider failure
        fail_for: Recipients that always fail
        latency: (min, max) seconds of simulated network latency
    """

    def __init__(
        self,
        channel: str,
        failure_rate: float = 0.0,
        fail_for: Iterable[str] = (),
        latency: tuple[float, float] = (0.0, 0.0),
    ):
        self._channel = channel
        self.failure_rate = failure_rate
        self.fail_for = set(fail_for)
        self.latency = latency
        self.sent: list[SentMessage] = []
        logger.info(f"Mock {channel} transport initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def channel(self) -> str:
        return self._channel

    async def _simulate_latency(self) -> None:
        low, high = self.latency
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))

    def _should_fail(self, to: str) -> bool:
        return to in self.fail_for or random.random() < self.failure_rate

    async def send_text(self, to: str, body: str) -> NotificationResult:
        """Simulate sending a text."""
        await self._simulate_latency()

        if self._should_fail(to):
            logger.warning(f"Mock {self._channel} failed (simulated) to {to}")
            raise TransportFailure("mock", to, f"Simulated {self._channel} failure", status_code=500)

        message_id = f"{self._channel}_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append(SentMessage(to=to, body=body))
        logger.info(f"Mock {self._channel} sent to {to}: {body[:50]} (ID: {message_id})")

        return NotificationResult(success=True, recipient=to, message_id=message_id, provider="mock")

    def messages_to(self, to: str) -> list[str]:
        return [m.body for m in self.sent if m.to == to]

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True


class MockPushService(BasePushService):
    """
    Mock push transport.

    Args:
        gone: player ids the simulated provider reports as unsubscribed (410)
    """

    def __init__(self, gone: Iterable[str] = ()):
        self.gone = set(gone)
        self.sent: list[SentMessage] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    async def send_push(self, player_id: str, title: str, body: str) -> NotificationResult:
        if player_id in self.gone:
            logger.warning(f"Mock push to {player_id}: subscription gone (simulated)")
            raise TransportFailure("mock-push", player_id, "Subscription gone", status_code=410)

        self.sent.append(SentMessage(to=player_id, body=body, title=title))
        logger.info(f"Mock push sent to {player_id}: {title}")
        return NotificationResult(success=True, recipient=player_id, provider="mock")
