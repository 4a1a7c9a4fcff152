"""
In-Memory Order Queue

Single-process backing: a sorted list guarded by an asyncio.Lock. Every
lookup-then-mutate sequence runs under the lock, so concurrent removals of
the same order cannot both succeed.
"""

import asyncio
import bisect
import logging
from typing import Optional

from barqueue.services.order_queue.base import BaseOrderQueue, Order

logger = logging.getLogger(__name__)


class InMemoryOrderQueue(BaseOrderQueue):
    """Process-local order queue."""

    def __init__(self):
        self._orders: list[Order] = []
        self._keys: list[tuple] = []
        self._last_id = 0
        self._lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def next_id(self) -> int:
        async with self._lock:
            self._last_id += 1
            return self._last_id

    async def append(self, order: Order) -> None:
        async with self._lock:
            if any(o.id == order.id for o in self._orders):
                raise ValueError(f"Order #{order.id} is already queued")

            index = bisect.bisect_right(self._keys, order.sort_key)
            self._keys.insert(index, order.sort_key)
            self._orders.insert(index, order)
            self._last_id = max(self._last_id, order.id)

        logger.debug(f"Queued order #{order.id} at position {index + 1}")

    async def get(self, order_id: int) -> Optional[Order]:
        async with self._lock:
            for order in self._orders:
                if order.id == order_id:
                    return order
        return None

    async def remove_by_id(self, order_id: int) -> Optional[Order]:
        async with self._lock:
            for index, order in enumerate(self._orders):
                if order.id == order_id:
                    return self._pop(index)
        return None

    async def remove_by_position(self, position: int) -> Optional[Order]:
        async with self._lock:
            if position < 1 or position > len(self._orders):
                return None
            return self._pop(position - 1)

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._orders)
            self._orders.clear()
            self._keys.clear()
        return count

    async def list(self) -> list[Order]:
        async with self._lock:
            return list(self._orders)

    def _pop(self, index: int) -> Order:
        del self._keys[index]
        return self._orders.pop(index)
