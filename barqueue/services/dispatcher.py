"""
Notification Dispatcher

Turns order events into outbound messages: customer replies on the channel
the order came from, admin alerts, web push for web orders and live-update
broadcasts for dashboards.

Every delivery is best-effort and isolated. A failing recipient is logged
and recorded in the returned report; it never raises into the caller and
never stops the remaining recipients. Nothing is retried inline. When a
redelivery hook is configured, transient text failures are handed to it
(the Celery worker in production).
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional

from barqueue.core.exceptions import TransportFailure
from barqueue.services import templates
from barqueue.services.broadcast import BaseBroadcaster
from barqueue.services.notifications.base import BaseMessagingService, BasePushService
from barqueue.services.opt_out import OptOutRegistry
from barqueue.services.order_queue.base import Order, SourceChannel
from barqueue.services.phone import normalize_phone
from barqueue.services.push_subscriptions import PushSubscriptionStore

logger = logging.getLogger(__name__)

RedeliveryHook = Callable[[str, str, str], None]


class NotificationEvent(str, enum.Enum):
    ORDER_RECEIVED = "order_received"
    ORDER_READY = "order_ready"
    QUEUE_CLEARED = "queue_cleared"
    ADMIN_ALERT = "admin_alert"


@dataclass(frozen=True)
class Recipient:
    channel: SourceChannel
    address: str


@dataclass
class DeliveryOutcome:
    channel: str
    recipient: str
    success: bool
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class DispatchReport:
    event: NotificationEvent
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    listeners_reached: int = 0

    @property
    def delivered(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if not o.success and not o.skipped]


class NotificationDispatcher:
    """
    Args:
        messaging: text transports keyed by channel value ("whatsapp", "sms")
        broadcaster: live-update fan-out
        push: web push transport (optional)
        push_store: client tag → push target records (optional)
        opt_out: SMS opt-out registry consulted before every SMS send
        admin_recipients: default recipients of new-order alerts
        redelivery: hook receiving (channel, to, body) of failed texts
    """

    def __init__(
        self,
        messaging: Mapping[str, BaseMessagingService],
        broadcaster: BaseBroadcaster,
        push: Optional[BasePushService] = None,
        push_store: Optional[PushSubscriptionStore] = None,
        opt_out: Optional[OptOutRegistry] = None,
        admin_recipients: Iterable[Recipient] = (),
        redelivery: Optional[RedeliveryHook] = None,
    ):
        self.messaging = dict(messaging)
        self.broadcaster = broadcaster
        self.push = push
        self.push_store = push_store
        self.opt_out = opt_out or OptOutRegistry()
        self.admin_recipients = tuple(admin_recipients)
        self.redelivery = redelivery

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def notify(
        self,
        event: NotificationEvent,
        order: Optional[Order] = None,
        recipients: Optional[Iterable[Recipient]] = None,
        text: Optional[str] = None,
        count: int = 0,
    ) -> DispatchReport:
        """
        Deliver one event.

        ``recipients`` overrides the configured admin recipients for
        ORDER_RECEIVED/ADMIN_ALERT and names who gets the QUEUE_CLEARED
        confirmation.
        """
        report = DispatchReport(event=event)
        targets = tuple(recipients) if recipients is not None else None

        if event == NotificationEvent.ORDER_RECEIVED:
            await self._to_customer(report, order, templates.order_received(order))
            report.listeners_reached = await self._broadcast("order_new", {
                "id": order.id,
                "canonical_id": order.canonical_drink_id,
                "display_name": order.display_name,
                "source": order.source_channel.value,
            })
            alert = templates.admin_new_order(order)
            for recipient in targets if targets is not None else self.admin_recipients:
                report.outcomes.append(await self.send_text(recipient.channel, recipient.address, alert))

        elif event == NotificationEvent.ORDER_READY:
            await self._to_customer(report, order, templates.order_ready(order))
            if order.client_tag:
                report.outcomes.append(await self._push_ready(order))
            report.listeners_reached = await self._broadcast("order_done", {
                "id": order.id,
                "canonical_id": order.canonical_drink_id,
                "display_name": order.display_name,
                "client_tag": order.client_tag,
            })

        elif event == NotificationEvent.QUEUE_CLEARED:
            report.listeners_reached = await self._broadcast("queue_cleared", {"count": count})
            for recipient in targets or ():
                report.outcomes.append(
                    await self.send_text(recipient.channel, recipient.address, templates.QUEUE_CLEARED)
                )

        elif event == NotificationEvent.ADMIN_ALERT:
            if not text:
                raise ValueError("ADMIN_ALERT needs a text")
            for recipient in targets if targets is not None else self.admin_recipients:
                report.outcomes.append(await self.send_text(recipient.channel, recipient.address, text))

        if report.failed:
            logger.warning(
                f"{event.value}: {len(report.failed)} of {len(report.outcomes)} deliveries failed"
            )
        return report

    # =========================================================================
    # SINGLE DELIVERIES
    # =========================================================================

    async def send_text(self, channel: SourceChannel, to: str, body: str) -> DeliveryOutcome:
        """Best-effort text to one recipient; also used for direct replies."""
        address = normalize_phone(to)

        if not address:
            logger.warning(f"Not sending {channel.value} message: no phone number in {to!r}")
            return DeliveryOutcome(channel.value, to, success=False, error="No phone number")

        if channel == SourceChannel.SMS and self.opt_out.is_opted_out(address):
            logger.info(f"Skipping SMS to opted-out {address}")
            return DeliveryOutcome(channel.value, address, success=False, skipped=True)

        transport = self.messaging.get(channel.value)
        if transport is None:
            logger.warning(f"No {channel.value} transport configured, dropping message to {address}")
            return DeliveryOutcome(channel.value, address, success=False, error="No transport")

        try:
            await transport.send_text(address, body)
        except TransportFailure as e:
            logger.warning(f"{channel.value} delivery failed: {e}")
            self._schedule_redelivery(channel, address, body, e)
            return DeliveryOutcome(channel.value, address, success=False, error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected {channel.value} transport error for {address}: {e}")
            return DeliveryOutcome(channel.value, address, success=False, error=str(e))

        return DeliveryOutcome(channel.value, address, success=True)

    async def _to_customer(self, report: DispatchReport, order: Order, body: str) -> None:
        # Web customers have no phone number; they hear back via push/broadcast
        if order.source_channel == SourceChannel.WEB:
            return
        report.outcomes.append(await self.send_text(order.source_channel, order.customer_ref, body))

    async def _push_ready(self, order: Order) -> DeliveryOutcome:
        tag = order.client_tag
        if self.push is None or self.push_store is None:
            return DeliveryOutcome("push", tag, success=False, skipped=True)

        try:
            player_id = await self.push_store.get_player_id(tag)
        except Exception as e:
            logger.exception(f"Push subscription lookup failed for {tag}: {e}")
            return DeliveryOutcome("push", tag, success=False, error=str(e))

        if not player_id:
            return DeliveryOutcome("push", tag, success=False, skipped=True)

        try:
            await self.push.send_push(player_id, templates.PUSH_READY_TITLE, templates.order_ready(order))
        except TransportFailure as e:
            logger.warning(f"Push delivery failed: {e}")
            if e.is_stale_target:
                await self._drop_subscription(tag)
            return DeliveryOutcome("push", tag, success=False, error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected push transport error for {tag}: {e}")
            return DeliveryOutcome("push", tag, success=False, error=str(e))

        return DeliveryOutcome("push", tag, success=True)

    async def _drop_subscription(self, client_tag: str) -> None:
        try:
            await self.push_store.remove(client_tag)
        except Exception as e:
            logger.exception(f"Could not remove stale push subscription {client_tag}: {e}")

    async def _broadcast(self, name: str, data: dict) -> int:
        try:
            return await self.broadcaster.publish(name, data)
        except Exception as e:
            logger.exception(f"Broadcast of {name} failed: {e}")
            return 0

    def _schedule_redelivery(
        self,
        channel: SourceChannel,
        address: str,
        body: str,
        error: TransportFailure,
    ) -> None:
        if self.redelivery is None:
            return
        # Client errors (bad number, blocked sender) will not heal on retry
        if error.provider_status is not None and 400 <= error.provider_status < 500:
            return
        try:
            self.redelivery(channel.value, address, body)
            logger.info(f"Queued {channel.value} redelivery to {address}")
        except Exception as e:
            logger.exception(f"Could not queue redelivery to {address}: {e}")
