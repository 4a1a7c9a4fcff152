"""
Order Queue Factory

Returns the in-memory or Redis queue based on QUEUE_BACKEND.

Environment Switching:
    - QUEUE_BACKEND=memory → InMemoryOrderQueue (single API process)
    - QUEUE_BACKEND=redis  → RedisOrderQueue (several processes share the queue)

The application builds one queue at startup and hands the same instance to
every handler.
"""

import logging
from functools import lru_cache

from barqueue.core.config import QueueBackend, get_settings
from barqueue.services.order_queue.base import BaseOrderQueue, Order, SourceChannel, utc_now
from barqueue.services.order_queue.memory import InMemoryOrderQueue
from barqueue.services.order_queue.redis import RedisOrderQueue

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_queue() -> BaseOrderQueue:
    """Get the configured order queue instance."""
    settings = get_settings()

    if settings.queue_backend == QueueBackend.REDIS:
        logger.info("Order Queue: Using RedisOrderQueue")
        return RedisOrderQueue(redis_url=settings.redis_url)

    logger.info("Order Queue: Using InMemoryOrderQueue (single process)")
    return InMemoryOrderQueue()


def reset_order_queue() -> None:
    """Clear the cached queue instance."""
    get_order_queue.cache_clear()


__all__ = [
    "get_order_queue",
    "reset_order_queue",
    "BaseOrderQueue",
    "InMemoryOrderQueue",
    "RedisOrderQueue",
    "Order",
    "SourceChannel",
    "utc_now",
]
