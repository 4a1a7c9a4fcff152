"""
SMS opt-out handling.

Carrier rules require STOP/HELP/START keywords on SMS programs. A number
that sent STOP gets no further messages until it opts back in; HELP and
START get a fixed reply.
"""

import enum
import logging
from typing import Optional

from barqueue.services.phone import normalize_phone

logger = logging.getLogger(__name__)

STOP_KEYWORDS = frozenset({"stop", "stopall", "unsubscribe", "cancel", "end", "quit"})
HELP_KEYWORDS = frozenset({"help", "info", "support"})
OPTIN_KEYWORDS = frozenset({"start", "yes", "subscribe", "join", "unstop"})

SMS_FOOTER = " Reply STOP to opt out or HELP for help."


class SmsKeyword(str, enum.Enum):
    STOP = "stop"
    HELP = "help"
    OPT_IN = "opt_in"


def classify_keyword(text: str) -> Optional[SmsKeyword]:
    """Whole-message keyword match, case-insensitive."""
    word = (text or "").strip().lower()
    if word in STOP_KEYWORDS:
        return SmsKeyword.STOP
    if word in HELP_KEYWORDS:
        return SmsKeyword.HELP
    if word in OPTIN_KEYWORDS:
        return SmsKeyword.OPT_IN
    return None


class OptOutRegistry:
    """Process-local set of numbers that opted out of SMS."""

    def __init__(self):
        self._numbers: set[str] = set()

    def opt_out(self, customer_ref: str) -> None:
        self._numbers.add(normalize_phone(customer_ref))
        logger.info(f"{customer_ref} opted out of SMS")

    def opt_in(self, customer_ref: str) -> None:
        self._numbers.discard(normalize_phone(customer_ref))
        logger.info(f"{customer_ref} opted in to SMS")

    def is_opted_out(self, customer_ref: str) -> bool:
        return normalize_phone(customer_ref) in self._numbers

    def __len__(self) -> int:
        return len(self._numbers)


def help_message(support_email: str = "", support_phone: str = "", privacy_url: str = "") -> str:
    parts = ["Support:"]
    if support_email:
        parts.append(support_email)
    if support_phone:
        parts.append(support_phone)
    if privacy_url:
        parts.append(f"Privacy: {privacy_url}")
    return f"{' '.join(parts)}{SMS_FOOTER}".strip()


def opt_in_message(campaign_name: str) -> str:
    return (
        f"You are opted in to {campaign_name} for order updates only. "
        f"Message frequency varies.{SMS_FOOTER}"
    )


OPT_OUT_CONFIRMATION = "You have opted out and will no longer receive messages."
