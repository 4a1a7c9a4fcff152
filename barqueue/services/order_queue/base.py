"""
Order Queue Abstract Base Class

Defines the interface every queue backing implements. The queue owns each
accepted order until it is served or the queue is cleared, and keeps
orders sorted by creation time (ties broken by id) after every mutation.

Removal is the contended operation: two bartenders serving "#1" at the same
moment must produce one winner and one "not found", never two ready
messages for the same drink.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional


class SourceChannel(str, enum.Enum):
    """Inbound channel an order arrived on."""
    WHATSAPP = "whatsapp"
    SMS = "sms"
    WEB = "web"


@dataclass(frozen=True)
class Order:
    """
    An accepted, not yet served drink order.

    Attributes:
        id: Stable lookup key, independent of queue position
        source_channel: Where the order came from (replies go back there)
        customer_ref: Phone number, or the web session tag for web orders
        customer_display_name: First name shown on the dashboard
        canonical_drink_id: Resolved catalog id
        display_name: Catalog display name of the drink
        raw_order_text: Text as the customer typed it, prefix removed
        created_at: Acceptance time (UTC)
        client_tag: Web client tag used for the "ready" push notification
    """
    id: int
    source_channel: SourceChannel
    customer_ref: str
    customer_display_name: str
    canonical_drink_id: str
    display_name: str
    raw_order_text: str
    created_at: datetime
    client_tag: Optional[str] = None

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.created_at, self.id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["source_channel"] = self.source_channel.value
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=int(data["id"]),
            source_channel=SourceChannel(data["source_channel"]),
            customer_ref=data["customer_ref"],
            customer_display_name=data["customer_display_name"],
            canonical_drink_id=data["canonical_drink_id"],
            display_name=data["display_name"],
            raw_order_text=data["raw_order_text"],
            created_at=datetime.fromisoformat(data["created_at"]),
            client_tag=data.get("client_tag"),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseOrderQueue(ABC):
    """Abstract base class for order queue backings."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend name."""
        pass

    @abstractmethod
    async def next_id(self) -> int:
        """Issue a new, strictly increasing order id."""
        pass

    @abstractmethod
    async def append(self, order: Order) -> None:
        """
        Insert an order at its creation-time position.

        Raises:
            ValueError: an order with the same id is already queued
        """
        pass

    @abstractmethod
    async def get(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def remove_by_id(self, order_id: int) -> Optional[Order]:
        """Remove and return the order, or None if it is not queued."""
        pass

    @abstractmethod
    async def remove_by_position(self, position: int) -> Optional[Order]:
        """
        Remove and return the order at a 1-based position of the current
        ordering, or None when the position is out of range.
        """
        pass

    @abstractmethod
    async def clear(self) -> int:
        """Drop every pending order; return how many were dropped."""
        pass

    @abstractmethod
    async def list(self) -> list[Order]:
        """Snapshot of pending orders, oldest first."""
        pass

    async def size(self) -> int:
        return len(await self.list())

    async def close(self) -> None:
        """Release backend resources."""
        return None
