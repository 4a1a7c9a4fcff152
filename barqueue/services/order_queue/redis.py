"""
Redis Order Queue

Shared backing for deployments running more than one API process. Orders
live in two keys:

    <prefix>:queue     sorted set, member = zero-padded id, score = created_at
    <prefix>:orders    hash, member → JSON order body

Zero-padded members make equal timestamps fall back to id order. Removal
runs ZREM/HGET/HDEL in one MULTI block, and the ZREM result decides the
winner when two processes remove the same order.
"""

import json
import logging
from typing import Optional

import redis.asyncio as aioredis

from barqueue.services.order_queue.base import BaseOrderQueue, Order

logger = logging.getLogger(__name__)


class RedisOrderQueue(BaseOrderQueue):
    """Order queue kept in Redis."""

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "barqueue",
    ):
        self._redis = client or aioredis.from_url(redis_url, decode_responses=True)
        self.queue_key = f"{prefix}:queue"
        self.orders_key = f"{prefix}:orders"
        self.id_key = f"{prefix}:order_id"

        logger.info(f"RedisOrderQueue initialized (prefix={prefix})")

    @property
    def backend_name(self) -> str:
        return "redis"

    @staticmethod
    def _member(order_id: int) -> str:
        return f"{order_id:012d}"

    async def next_id(self) -> int:
        return int(await self._redis.incr(self.id_key))

    async def append(self, order: Order) -> None:
        member = self._member(order.id)
        body = json.dumps(order.to_dict())

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hsetnx(self.orders_key, member, body)
            pipe.zadd(self.queue_key, {member: order.created_at.timestamp()}, nx=True)
            created, _ = await pipe.execute()

        if not created:
            raise ValueError(f"Order #{order.id} is already queued")

    async def get(self, order_id: int) -> Optional[Order]:
        body = await self._redis.hget(self.orders_key, self._member(order_id))
        return self._decode(body)

    async def remove_by_id(self, order_id: int) -> Optional[Order]:
        return await self._remove_member(self._member(order_id))

    async def remove_by_position(self, position: int) -> Optional[Order]:
        if position < 1:
            return None
        members = await self._redis.zrange(self.queue_key, position - 1, position - 1)
        if not members:
            return None
        return await self._remove_member(members[0])

    async def clear(self) -> int:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zcard(self.queue_key)
            pipe.delete(self.queue_key, self.orders_key)
            count, _ = await pipe.execute()
        return int(count)

    async def list(self) -> list[Order]:
        members = await self._redis.zrange(self.queue_key, 0, -1)
        if not members:
            return []
        bodies = await self._redis.hmget(self.orders_key, members)
        return [order for order in map(self._decode, bodies) if order is not None]

    async def size(self) -> int:
        return int(await self._redis.zcard(self.queue_key))

    async def close(self) -> None:
        await self._redis.aclose()

    async def _remove_member(self, member: str) -> Optional[Order]:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.queue_key, member)
            pipe.hget(self.orders_key, member)
            pipe.hdel(self.orders_key, member)
            removed, body, _ = await pipe.execute()

        if not removed:
            return None
        return self._decode(body)

    @staticmethod
    def _decode(body: Optional[str]) -> Optional[Order]:
        if body is None:
            return None
        return Order.from_dict(json.loads(body))
