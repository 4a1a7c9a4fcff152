"""
Admin Command Parser

Bartenders run the queue from the same WhatsApp/SMS number customers order
from. Messages from allow-listed numbers are checked for a short command
first; anything that is not a command continues into the ordering flow.

Commands (case-insensitive):
    queue           list pending orders
    clear           drop every pending order (stock untouched)
    <n>             serve the n-th order of the current listing
    done id <id>    serve by order id (stable across reordering)
    id <id>         same as above
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from barqueue.services.order_queue.base import Order
from barqueue.services.phone import normalize_phone

logger = logging.getLogger(__name__)

_POSITION = re.compile(r"^\d+$")
_BY_ID = re.compile(r"^(?:done\s+)?id\s*#?(\d+)$")


class AdminCommandKind(str, enum.Enum):
    LIST = "list"
    CLEAR = "clear"
    SERVE_POSITION = "serve_position"
    SERVE_ID = "serve_id"


@dataclass(frozen=True)
class AdminCommand:
    kind: AdminCommandKind
    sender: str
    argument: Optional[int] = None


class AdminCommandParser:
    """
    Recognizes admin commands from allow-listed senders.

    With an empty allow-list nobody is an admin unless ``open_mode`` is set,
    in which case every sender is. Open mode exists for bootstrapping a new
    bar before its numbers are known and must not stay on in production.
    """

    def __init__(self, admin_numbers: Iterable[str] = (), open_mode: bool = False):
        self.admin_numbers = frozenset(
            n for n in (normalize_phone(a) for a in admin_numbers) if n
        )
        self.open_mode = open_mode

        if self.open_mode and not self.admin_numbers:
            logger.warning(
                "⚠️ ADMIN_OPEN_MODE is on and no ADMIN_NUMBERS are set: "
                "every sender can run admin commands"
            )

    def is_admin(self, sender_id: str) -> bool:
        if not self.admin_numbers:
            return self.open_mode
        return normalize_phone(sender_id) in self.admin_numbers

    def parse(self, sender_id: str, text: str) -> Optional[AdminCommand]:
        """Return the command, or None to let the message through as an order."""
        if not self.is_admin(sender_id):
            return None

        sender = normalize_phone(sender_id) or sender_id
        lower = " ".join((text or "").lower().split())
        by_id = _BY_ID.match(lower)

        if lower == "queue":
            command = AdminCommand(AdminCommandKind.LIST, sender)
        elif lower == "clear":
            command = AdminCommand(AdminCommandKind.CLEAR, sender)
        elif _POSITION.match(lower):
            command = AdminCommand(AdminCommandKind.SERVE_POSITION, sender, int(lower))
        elif by_id:
            command = AdminCommand(AdminCommandKind.SERVE_ID, sender, int(by_id.group(1)))
        else:
            logger.debug(f"Unknown admin text from {sender}, passing to order flow: {text!r}")
            return None

        logger.info(f"👑 Admin command by {sender}: {command.kind.value}")
        return command


def format_queue_listing(orders: Sequence[Order]) -> str:
    """WhatsApp-friendly listing with 1-based positions and stable ids."""
    if not orders:
        return "📭 Queue is empty."

    lines = [
        f"#{position} • {order.customer_display_name} → {order.canonical_drink_id} (id {order.id})"
        for position, order in enumerate(orders, start=1)
    ]
    return (
        f"📋 Current orders ({len(orders)}):\n"
        + "\n".join(lines)
        + "\n\nReply with a number to mark done."
    )
