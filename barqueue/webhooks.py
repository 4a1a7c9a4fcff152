"""
Inbound webhook payload parsing.

WhatsApp (Graph API) delivers JSON::

    {"entry": [{"changes": [{"value": {
        "contacts": [{"profile": {"name": "Alice Smith"}, "wa_id": "15550001111"}],
        "messages": [{"from": "15550001111", "type": "text", "text": {"body": "Margarita"}}]
    }}]}]}

Status callbacks (delivered/read receipts) carry no ``messages`` and are
acknowledged without processing. Twilio posts form fields ``From`` and
``Body``.
"""

import logging
from typing import Any, Optional

from barqueue.services.order_queue.base import SourceChannel
from barqueue.services.ordering import InboundMessage

logger = logging.getLogger(__name__)


def parse_whatsapp_payload(payload: dict[str, Any]) -> Optional[InboundMessage]:
    """Extract the first text message, or None for anything else."""
    try:
        value = payload["entry"][0]["changes"][0]["value"]
    except (KeyError, IndexError, TypeError):
        logger.debug("WhatsApp payload without entry/changes/value")
        return None

    messages = value.get("messages") or []
    if not messages:
        return None

    message = messages[0]
    if message.get("type", "text") != "text":
        logger.info(f"Ignoring WhatsApp {message.get('type')} message from {message.get('from')}")
        return None

    sender = message.get("from")
    body = (message.get("text") or {}).get("body")
    if not sender or body is None:
        return None

    name = None
    contacts = value.get("contacts") or []
    if contacts:
        name = (contacts[0].get("profile") or {}).get("name")

    return InboundMessage(
        sender_id=sender,
        text=body,
        channel=SourceChannel.WHATSAPP,
        sender_display_name=name,
    )


def parse_sms_form(form: dict[str, Any]) -> Optional[InboundMessage]:
    sender = (form.get("From") or "").strip()
    if not sender:
        return None
    return InboundMessage(
        sender_id=sender,
        text=form.get("Body") or "",
        channel=SourceChannel.SMS,
    )
