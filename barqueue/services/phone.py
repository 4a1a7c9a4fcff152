"""Phone number normalization shared by admin checks and outbound sends."""

import re

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(value: str) -> str:
    """
    Canonical ``+<digits>`` form of a phone reference.

    WhatsApp delivers bare digits ("15550100000"), Twilio delivers E.164
    ("+15550100000") and sandbox numbers carry a "whatsapp:" prefix; all of
    them normalize to the same string. Values without digits come back
    empty.

    >>> normalize_phone("whatsapp:+1 (555) 010-0000")
    '+15550100000'
    """
    value = (value or "").strip()
    if value.lower().startswith("whatsapp:"):
        value = value[len("whatsapp:"):]
    digits = _NON_DIGITS.sub("", value)
    return f"+{digits}" if digits else ""
