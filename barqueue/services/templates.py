"""
Customer and staff message templates.

WhatsApp messages keep the bar's emoji style; SMS variants drop it and
carry the carrier-mandated STOP/HELP footer.
"""

from barqueue.services.opt_out import SMS_FOOTER
from barqueue.services.order_queue.base import Order, SourceChannel


def _sms(text: str) -> str:
    return text + SMS_FOOTER


def order_received(order: Order) -> str:
    if order.source_channel == SourceChannel.SMS:
        return _sms(f'We received your order for "{order.raw_order_text}". We are preparing it now.')
    return (
        f'👨‍🍳 Hi {order.customer_display_name}, we received your order for '
        f'"{order.raw_order_text}". We\'re preparing it now!'
    )


def order_ready(order: Order) -> str:
    text = f'🍸 Your "{order.display_name}" is ready!'
    if order.source_channel == SourceChannel.SMS:
        return _sms(text)
    return text


def invalid_order(stripped: str, channel: SourceChannel, menu_url: str = "") -> str:
    if channel == SourceChannel.SMS:
        menu_line = f" Please check the menu: {menu_url}" if menu_url else ""
        return _sms(f'Invalid order "{stripped}".{menu_line}')
    menu_line = f"\nPlease check the menu at: {menu_url}" if menu_url else ""
    return f'❌ Invalid order "{stripped}".{menu_line}'


def sold_out(stripped: str, channel: SourceChannel) -> str:
    if channel == SourceChannel.SMS:
        return _sms(f'Sorry, "{stripped}" is sold out.')
    return f'❌ Sorry, "{stripped}" is sold out.'


def admin_new_order(order: Order) -> str:
    return (
        f"🆕 New order #{order.id}: {order.customer_display_name} → "
        f"{order.display_name} ({order.source_channel.value})"
    )


def admin_served(label: str) -> str:
    return f"✅ Order {label} served."


def admin_missing(label: str) -> str:
    return f"❌ No order {label}."


QUEUE_CLEARED = "🗑️ Queue cleared."
PUSH_READY_TITLE = "Your drink is ready"
