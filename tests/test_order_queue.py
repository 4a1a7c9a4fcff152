"""Tests for the order queue backings."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from barqueue.core.config import get_settings
from barqueue.services.order_queue import (
    InMemoryOrderQueue,
    Order,
    RedisOrderQueue,
    SourceChannel,
    get_order_queue,
    reset_order_queue,
)

from tests.conftest import run

T0 = datetime(2024, 6, 1, 21, 0, tzinfo=timezone.utc)


def make_order(order_id: int, seconds: int = 0, drink: str = "mojito") -> Order:
    return Order(
        id=order_id,
        source_channel=SourceChannel.WHATSAPP,
        customer_ref="+15551234567",
        customer_display_name="Alice",
        canonical_drink_id=drink,
        display_name=drink.title(),
        raw_order_text=drink,
        created_at=T0 + timedelta(seconds=seconds),
    )


async def exercise_ordering(queue):
    late, early = make_order(2, seconds=5), make_order(1, seconds=1)
    await queue.append(late)
    await queue.append(early)
    return await queue.list()


async def exercise_positions(queue):
    await queue.append(make_order(1, seconds=1))
    await queue.append(make_order(2, seconds=2))
    return [
        await queue.remove_by_position(1),
        await queue.remove_by_position(1),
        await queue.remove_by_position(1),
    ]


class TestInMemoryOrderQueue:

    def test_list_is_sorted_by_creation_time(self):
        orders = run(exercise_ordering(InMemoryOrderQueue()))
        assert [o.id for o in orders] == [1, 2]

    def test_equal_timestamps_fall_back_to_id(self):
        async def scenario():
            queue = InMemoryOrderQueue()
            await queue.append(make_order(5))
            await queue.append(make_order(3))
            return await queue.list()

        assert [o.id for o in run(scenario())] == [3, 5]

    def test_remove_by_position_drains_in_order(self):
        first, second, third = run(exercise_positions(InMemoryOrderQueue()))
        assert first.id == 1
        assert second.id == 2
        assert third is None

    def test_remove_by_position_out_of_range(self):
        async def scenario():
            queue = InMemoryOrderQueue()
            await queue.append(make_order(1))
            return await queue.remove_by_position(0), await queue.remove_by_position(2)

        assert run(scenario()) == (None, None)

    def test_duplicate_id_rejected(self):
        async def scenario():
            queue = InMemoryOrderQueue()
            await queue.append(make_order(1))
            await queue.append(make_order(1, seconds=3))

        with pytest.raises(ValueError):
            run(scenario())

    def test_concurrent_removal_has_one_winner(self):
        async def scenario():
            queue = InMemoryOrderQueue()
            await queue.append(make_order(1))
            results = await asyncio.gather(*(queue.remove_by_id(1) for _ in range(5)))
            return results, await queue.size()

        results, size = run(scenario())
        assert sum(r is not None for r in results) == 1
        assert size == 0

    def test_clear_returns_count(self):
        async def scenario():
            queue = InMemoryOrderQueue()
            for i in range(3):
                await queue.append(make_order(i + 1, seconds=i))
            return await queue.clear(), await queue.list()

        assert run(scenario()) == (3, [])

    def test_ids_increase(self):
        async def scenario():
            queue = InMemoryOrderQueue()
            return [await queue.next_id() for _ in range(3)]

        assert run(scenario()) == [1, 2, 3]


class TestRedisOrderQueue:
    """Same behaviour on the Redis backing (fakeredis)."""

    @pytest.fixture(autouse=True)
    def _fakeredis(self):
        self.fakeredis = pytest.importorskip("fakeredis")

    def make_queue(self) -> RedisOrderQueue:
        return RedisOrderQueue(client=self.fakeredis.FakeAsyncRedis(decode_responses=True))

    def test_list_is_sorted_by_creation_time(self):
        async def scenario():
            queue = self.make_queue()
            try:
                return await exercise_ordering(queue)
            finally:
                await queue.close()

        orders = run(scenario())
        assert [o.id for o in orders] == [1, 2]
        assert orders[0] == make_order(1, seconds=1)

    def test_remove_by_position_drains_in_order(self):
        async def scenario():
            queue = self.make_queue()
            try:
                return await exercise_positions(queue)
            finally:
                await queue.close()

        first, second, third = run(scenario())
        assert (first.id, second.id, third) == (1, 2, None)

    def test_remove_by_id_twice(self):
        async def scenario():
            queue = self.make_queue()
            try:
                await queue.append(make_order(4))
                return await queue.remove_by_id(4), await queue.remove_by_id(4)
            finally:
                await queue.close()

        first, second = run(scenario())
        assert first.id == 4
        assert second is None

    def test_clear_and_next_id(self):
        async def scenario():
            queue = self.make_queue()
            try:
                ids = [await queue.next_id(), await queue.next_id()]
                for order_id in ids:
                    await queue.append(make_order(order_id))
                return ids, await queue.clear(), await queue.size()
            finally:
                await queue.close()

        assert run(scenario()) == ([1, 2], 2, 0)


class TestFactory:

    @pytest.fixture(autouse=True)
    def fresh_factory(self):
        get_settings.cache_clear()
        reset_order_queue()
        yield
        get_settings.cache_clear()
        reset_order_queue()

    def test_memory_backend_is_shared(self, monkeypatch):
        monkeypatch.setenv("QUEUE_BACKEND", "memory")
        get_settings.cache_clear()

        queue = get_order_queue()

        assert isinstance(queue, InMemoryOrderQueue)
        assert get_order_queue() is queue

    def test_reset_switches_backend(self, monkeypatch):
        monkeypatch.setenv("QUEUE_BACKEND", "memory")
        get_settings.cache_clear()
        assert isinstance(get_order_queue(), InMemoryOrderQueue)

        monkeypatch.setenv("QUEUE_BACKEND", "redis")
        get_settings.cache_clear()
        reset_order_queue()

        assert isinstance(get_order_queue(), RedisOrderQueue)
