"""
OneSignal Push Transport

Sends "your drink is ready" web push notifications to browsers that
registered a player id for their client tag.
"""

import logging
from typing import Optional

import httpx

from barqueue.core.config import get_settings
from barqueue.core.exceptions import TransportFailure
from barqueue.services.notifications.base import BasePushService, NotificationResult

logger = logging.getLogger(__name__)

ONESIGNAL_URL = "https://onesignal.com/api/v1/notifications"


class OneSignalPushService(BasePushService):
    """Push transport backed by the OneSignal REST API."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self.app_id = settings.onesignal_app_id
        self.api_key = settings.onesignal_api_key
        self._client = client or httpx.AsyncClient(timeout=settings.transport_timeout_seconds)

        if not (self.app_id and self.api_key):
            logger.warning("OneSignal credentials not configured")

    @property
    def provider_name(self) -> str:
        return "onesignal"

    async def send_push(self, player_id: str, title: str, body: str) -> NotificationResult:
        if not (self.app_id and self.api_key):
            raise TransportFailure(self.provider_name, player_id, "OneSignal not configured")

        payload = {
            "app_id": self.app_id,
            "include_player_ids": [player_id],
            "headings": {"en": title},
            "contents": {"en": body},
        }

        try:
            response = await self._client.post(
                ONESIGNAL_URL,
                json=payload,
                headers={"Authorization": f"Basic {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise TransportFailure(self.provider_name, player_id, str(e)) from e

        if response.status_code >= 400:
            raise TransportFailure(
                self.provider_name,
                player_id,
                response.text[:200],
                status_code=response.status_code,
            )

        data = response.json()
        errors = data.get("errors")
        # OneSignal answers 200 with "invalid_player_ids" for unsubscribed devices
        if isinstance(errors, dict) and player_id in errors.get("invalid_player_ids", []):
            raise TransportFailure(self.provider_name, player_id, "Player unsubscribed", status_code=410)
        if isinstance(errors, list) and errors:
            stale = any("not subscribed" in str(e).lower() for e in errors)
            raise TransportFailure(
                self.provider_name,
                player_id,
                "; ".join(map(str, errors)),
                status_code=410 if stale else None,
            )

        logger.info(f"Push sent to {player_id}: {data.get('id')}")
        return NotificationResult(
            success=True,
            recipient=player_id,
            message_id=data.get("id"),
            provider=self.provider_name,
        )

    async def close(self) -> None:
        await self._client.aclose()
