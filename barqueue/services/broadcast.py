"""
Live-update broadcaster.

Dashboards and ordering pages keep an open Server-Sent Events stream and
receive ``order_new`` / ``order_done`` / ``queue_cleared`` events as they
happen.

Two backings:
    - InMemoryBroadcaster: fan-out to per-listener asyncio queues; only
      reaches listeners connected to this process.
    - RedisBroadcaster: publishes on a Redis pub/sub channel that every API
      process subscribes to, so a listener on process A sees orders taken by
      process B.

Publishing never blocks on a slow listener: a listener whose buffer is full
loses its oldest pending event.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis

from barqueue.core.config import QueueBackend, get_settings

logger = logging.getLogger(__name__)


@dataclass
class LiveEvent:
    name: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        return f"event: {self.name}\ndata: {json.dumps(self.data)}\n\n"


class BaseBroadcaster(ABC):

    @property
    @abstractmethod
    def backend_name(self) -> str:
        pass

    @abstractmethod
    async def publish(self, name: str, data: dict[str, Any]) -> int:
        """Publish an event; returns how many listeners it reached (if known)."""
        pass

    @abstractmethod
    def subscribe(self) -> AsyncIterator[LiveEvent]:
        """Async iterator of events published after the call."""
        pass

    async def close(self) -> None:
        return None


class InMemoryBroadcaster(BaseBroadcaster):
    """In-process fan-out."""

    def __init__(self, max_pending: int = 100):
        self.max_pending = max_pending
        self._listeners: set[asyncio.Queue] = set()

    @property
    def backend_name(self) -> str:
        return "memory"

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, name: str, data: dict[str, Any]) -> int:
        event = LiveEvent(name=name, data=data)
        for queue in list(self._listeners):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

        logger.debug(f"Broadcast {name} to {len(self._listeners)} listeners")
        return len(self._listeners)

    async def subscribe(self) -> AsyncIterator[LiveEvent]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending)
        self._listeners.add(queue)
        logger.info(f"Live listener connected ({len(self._listeners)} total)")
        try:
            while True:
                yield await queue.get()
        finally:
            self._listeners.discard(queue)
            logger.info(f"Live listener disconnected ({len(self._listeners)} left)")


class RedisBroadcaster(BaseBroadcaster):
    """Fan-out over a Redis pub/sub channel shared by all API processes."""

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        redis_url: str = "redis://localhost:6379/0",
        channel: str = "barqueue:events",
    ):
        self._redis = client or aioredis.from_url(redis_url, decode_responses=True)
        self.channel = channel

    @property
    def backend_name(self) -> str:
        return "redis"

    async def publish(self, name: str, data: dict[str, Any]) -> int:
        message = json.dumps({"event": name, "data": data})
        return int(await self._redis.publish(self.channel, message))

    async def subscribe(self) -> AsyncIterator[LiveEvent]:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                payload = json.loads(message["data"])
                yield LiveEvent(name=payload["event"], data=payload["data"])
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    async def close(self) -> None:
        await self._redis.aclose()


@lru_cache()
def get_broadcaster() -> BaseBroadcaster:
    """Get the configured broadcaster (BROADCAST_BACKEND)."""
    settings = get_settings()

    if settings.broadcast_backend == QueueBackend.REDIS:
        logger.info("Broadcaster: Using RedisBroadcaster")
        return RedisBroadcaster(redis_url=settings.redis_url)

    logger.info("Broadcaster: Using InMemoryBroadcaster (single process)")
    return InMemoryBroadcaster()
