"""
Ordering Service

Orchestrates the order life cycle across the resolver, stock ledger, queue
and dispatcher:

    inbound message ─┬─ SMS keyword (STOP/HELP/START) ── reply, done
                     ├─ admin command ── queue/serve/clear, reply to admin
                     ├─ onboarding noise ── ignored silently
                     └─ order text ── resolve → reserve stock → enqueue → notify

Resolution and stock errors end the handling of that one message with a
single reply. Notification failures never undo an accepted order.
"""

import enum
import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional

from barqueue.core.exceptions import OrderNotFound, OutOfStock, UnresolvedDrink
from barqueue.services import templates
from barqueue.services.admin_commands import (
    AdminCommand,
    AdminCommandKind,
    AdminCommandParser,
    format_queue_listing,
)
from barqueue.services.catalog import CatalogSnapshot, DrinkCatalog, DrinkCatalogEntry
from barqueue.services.dispatcher import NotificationDispatcher, NotificationEvent, Recipient
from barqueue.services.opt_out import (
    OPT_OUT_CONFIRMATION,
    OptOutRegistry,
    SmsKeyword,
    classify_keyword,
    help_message,
    opt_in_message,
)
from barqueue.services.order_queue.base import BaseOrderQueue, Order, SourceChannel, utc_now
from barqueue.services.resolver import DrinkResolver, normalize
from barqueue.services.stock import StockLedger, StockRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    """A single message from a messaging webhook."""
    sender_id: str
    text: str
    channel: SourceChannel
    sender_display_name: Optional[str] = None

    @property
    def first_name(self) -> str:
        parts = (self.sender_display_name or "").split()
        return parts[0] if parts else self.sender_id


class InboundOutcome(str, enum.Enum):
    ORDER_PLACED = "order_placed"
    ADMIN_COMMAND = "admin_command"
    KEYWORD = "keyword"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"
    SOLD_OUT = "sold_out"


@dataclass
class InboundResult:
    outcome: InboundOutcome
    order: Optional[Order] = None
    command: Optional[AdminCommand] = None


@dataclass(frozen=True)
class CampaignInfo:
    """Texts quoted in SMS keyword replies and invalid-order replies."""
    menu_url: str = ""
    campaign_name: str = "Evening Bar SMS Ordering"
    support_email: str = ""
    support_phone: str = ""
    privacy_url: str = ""


class OrderingService:
    """Single entry point for every queue or stock mutation triggered by a request."""

    def __init__(
        self,
        catalog: DrinkCatalog,
        resolver: DrinkResolver,
        queue: BaseOrderQueue,
        ledger: StockLedger,
        dispatcher: NotificationDispatcher,
        admin_parser: AdminCommandParser,
        opt_out: Optional[OptOutRegistry] = None,
        campaign: CampaignInfo = CampaignInfo(),
    ):
        self.catalog = catalog
        self.resolver = resolver
        self.queue = queue
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.admin_parser = admin_parser
        self.opt_out = opt_out or dispatcher.opt_out
        self.campaign = campaign
        # Order ids in the last queue listing sent to each admin, in listed order
        self._listings: dict[str, list[int]] = {}

    # =========================================================================
    # INBOUND MESSAGES
    # =========================================================================

    async def handle_inbound(self, message: InboundMessage) -> InboundResult:
        """Process one WhatsApp/SMS message end to end."""
        text = (message.text or "").strip()
        logger.debug(f"📝 Incoming {message.channel.value} text from {message.sender_id}: {text!r}")

        if message.channel == SourceChannel.SMS:
            keyword = classify_keyword(text)
            if keyword is not None:
                await self._handle_keyword(message, keyword)
                return InboundResult(InboundOutcome.KEYWORD)
            if self.opt_out.is_opted_out(message.sender_id):
                logger.info(f"Ignoring message from opted-out {message.sender_id}")
                return InboundResult(InboundOutcome.IGNORED)

        command = self.admin_parser.parse(message.sender_id, text)
        if command is not None:
            await self.run_admin_command(command, message.channel)
            return InboundResult(InboundOutcome.ADMIN_COMMAND, command=command)

        if not text or self.resolver.is_noise(text):
            logger.debug(f"Ignoring non-order text from {message.sender_id}")
            return InboundResult(InboundOutcome.IGNORED)

        customer_name = message.first_name
        if message.channel == SourceChannel.SMS:
            customer_name = message.sender_id

        try:
            order = await self.place_order(
                channel=message.channel,
                customer_ref=message.sender_id,
                customer_name=customer_name,
                drink_text=text,
            )
        except UnresolvedDrink as e:
            logger.info(f"❌ Invalid order from {message.sender_id}: {e.text!r}")
            await self.dispatcher.send_text(
                message.channel,
                message.sender_id,
                templates.invalid_order(e.text, message.channel, self.campaign.menu_url),
            )
            return InboundResult(InboundOutcome.UNRESOLVED)
        except OutOfStock:
            await self.dispatcher.send_text(
                message.channel,
                message.sender_id,
                templates.sold_out(normalize(text).stripped, message.channel),
            )
            return InboundResult(InboundOutcome.SOLD_OUT)

        return InboundResult(InboundOutcome.ORDER_PLACED, order=order)

    async def _handle_keyword(self, message: InboundMessage, keyword: SmsKeyword) -> None:
        sender = message.sender_id
        if keyword == SmsKeyword.STOP:
            # Confirmation goes out before the number is muted
            await self.dispatcher.send_text(SourceChannel.SMS, sender, OPT_OUT_CONFIRMATION)
            self.opt_out.opt_out(sender)
        elif keyword == SmsKeyword.HELP:
            await self.dispatcher.send_text(SourceChannel.SMS, sender, help_message(
                self.campaign.support_email,
                self.campaign.support_phone,
                self.campaign.privacy_url,
            ))
        elif keyword == SmsKeyword.OPT_IN:
            self.opt_out.opt_in(sender)
            await self.dispatcher.send_text(
                SourceChannel.SMS, sender, opt_in_message(self.campaign.campaign_name)
            )

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def place_order(
        self,
        channel: SourceChannel,
        customer_ref: str,
        customer_name: str,
        drink_text: Optional[str] = None,
        canonical_id: Optional[str] = None,
        client_tag: Optional[str] = None,
    ) -> Order:
        """
        Resolve, take stock, enqueue and acknowledge one order.

        Raises:
            UnresolvedDrink: neither the text nor the canonical id match the catalog
            OutOfStock: the drink has no units left; nothing was queued
        """
        snapshot = self.catalog.snapshot()
        normalized = normalize(drink_text or "")

        entry: Optional[DrinkCatalogEntry] = None
        if canonical_id:
            entry = snapshot.get(canonical_id)
        if entry is None and drink_text:
            entry = self.resolver.resolve_key(normalized.key, snapshot)
        if entry is None:
            raise UnresolvedDrink(normalized.stripped or canonical_id or "")

        await self.ledger.reserve(entry.canonical_id)

        try:
            order = Order(
                id=await self.queue.next_id(),
                source_channel=channel,
                customer_ref=customer_ref,
                customer_display_name=customer_name,
                canonical_drink_id=entry.canonical_id,
                display_name=entry.display_name,
                raw_order_text=normalized.stripped or entry.display_name,
                created_at=utc_now(),
                client_tag=client_tag,
            )
            await self.queue.append(order)
        except Exception:
            await self.ledger.release(entry.canonical_id)
            raise

        logger.info(
            f"✅ New order #{order.id} from {customer_ref} ({channel.value}): "
            f"{order.raw_order_text!r} → {entry.canonical_id}"
        )
        await self.dispatcher.notify(NotificationEvent.ORDER_RECEIVED, order)
        return order

    async def list_queue(self) -> list[Order]:
        return await self.queue.list()

    async def serve_by_id(self, order_id: int) -> Order:
        """
        Raises:
            OrderNotFound: not queued (already served, cleared or never existed)
        """
        order = await self.queue.remove_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"#{order_id}")
        return await self._served(order)

    async def serve_by_position(self, position: int) -> Order:
        """
        Raises:
            OrderNotFound: no order at that 1-based position
        """
        order = await self.queue.remove_by_position(position)
        if order is None:
            raise OrderNotFound(f"at position {position}")
        return await self._served(order)

    async def _serve_listed(self, admin: str, position: int) -> Order:
        """
        Serve the order shown at ``position`` in the last listing this admin got.

        Two admins answering "1" to the same listing name the same order, so
        only one of them can serve it. Without a listing the position counts
        in the current queue.

        Raises:
            OrderNotFound: no such position, or that order is gone
        """
        listed = self._listings.get(admin)
        if listed is None:
            return await self.serve_by_position(position)
        if not 1 <= position <= len(listed):
            raise OrderNotFound(f"at position {position}")
        return await self.serve_by_id(listed[position - 1])

    async def _served(self, order: Order) -> Order:
        logger.info(f"🍸 Order #{order.id} served ({order.canonical_drink_id} for {order.customer_ref})")
        await self.dispatcher.notify(NotificationEvent.ORDER_READY, order)
        return order

    async def clear_queue(self, notify: Optional[list[Recipient]] = None) -> int:
        """Drop all pending orders. Stock is not given back."""
        count = await self.queue.clear()
        logger.info(f"🗑️ Queue cleared ({count} orders dropped)")
        await self.dispatcher.notify(NotificationEvent.QUEUE_CLEARED, recipients=notify or [], count=count)
        return count

    # =========================================================================
    # ADMIN COMMANDS
    # =========================================================================

    async def run_admin_command(self, command: AdminCommand, channel: SourceChannel) -> None:
        """Execute a parsed command and reply to the admin on the same channel."""
        admin = command.sender

        if command.kind == AdminCommandKind.LIST:
            orders = await self.queue.list()
            self._listings[admin] = [o.id for o in orders]
            await self.dispatcher.send_text(channel, admin, format_queue_listing(orders))

        elif command.kind == AdminCommandKind.CLEAR:
            await self.clear_queue(notify=[Recipient(channel, admin)])

        elif command.kind in (AdminCommandKind.SERVE_POSITION, AdminCommandKind.SERVE_ID):
            if command.kind == AdminCommandKind.SERVE_POSITION:
                label = f"#{command.argument}"
                serve = partial(self._serve_listed, admin)
            else:
                label = f"id {command.argument}"
                serve = self.serve_by_id

            try:
                await serve(command.argument)
            except OrderNotFound:
                await self.dispatcher.send_text(channel, admin, templates.admin_missing(label))
            else:
                await self.dispatcher.send_text(channel, admin, templates.admin_served(label))

    # =========================================================================
    # CATALOG & STOCK
    # =========================================================================

    async def adjust_stock(
        self,
        drink_id: int,
        delta: Optional[int] = None,
        absolute: Optional[int] = None,
    ) -> StockRecord:
        """Dashboard stock change: ``absolute`` wins when both are given."""
        if absolute is not None:
            return await self.ledger.set_absolute(drink_id, absolute)
        return await self.ledger.adjust_delta(drink_id, delta or 0)

    async def reload_catalog(self) -> CatalogSnapshot:
        """Re-read the catalog file and make sure every drink has a stock row."""
        snapshot = self.catalog.reload()
        await self.ledger.seed(snapshot)
        return snapshot

    async def add_drink(
        self,
        canonical_id: str,
        display_name: str,
        initial_stock: int = 0,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> StockRecord:
        """Create a stock row and make the drink orderable until the next catalog reload."""
        record = await self.ledger.create_drink(
            canonical_id, display_name, initial_stock, description, image_url
        )
        snapshot = self.catalog.snapshot()
        if snapshot.get(canonical_id) is None:
            self.catalog.replace([
                *snapshot.entries,
                DrinkCatalogEntry(canonical_id=canonical_id, display_name=display_name),
            ])
        return record

    async def delete_drink(self, drink_id: int) -> None:
        record = await self.ledger.get(drink_id)
        await self.ledger.delete_drink(drink_id)
        snapshot = self.catalog.snapshot()
        self.catalog.replace(
            e for e in snapshot.entries if e.canonical_id != record.canonical_id
        )
