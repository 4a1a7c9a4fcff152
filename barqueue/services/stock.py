"""
Stock Ledger

Durable per-drink counters in the ``drinks`` table. Counts never go below
zero: decrements are conditional updates and deltas are clamped in SQL.

Taking the last unit of a drink is the race that matters. ``reserve`` runs
a single ``UPDATE ... WHERE stock_count > 0`` so the database decides the
winner across processes, and in-process callers for the same drink are
additionally serialized on a per-drink asyncio.Lock.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from barqueue.core.exceptions import (
    DrinkNotFound,
    DuplicateDrink,
    InvalidStockValue,
    OutOfStock,
)
from barqueue.models import Drink
from barqueue.services.catalog import DrinkCatalogEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockRecord:
    """Read-only view of one ``drinks`` row."""
    drink_id: int
    canonical_id: str
    display_name: str
    stock_count: int
    description: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_model(cls, drink: Drink) -> "StockRecord":
        return cls(
            drink_id=drink.id,
            canonical_id=drink.canonical,
            display_name=drink.display_name,
            stock_count=drink.stock_count,
            description=drink.description,
            image_url=drink.image_url,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.drink_id,
            "canonical": self.canonical_id,
            "display_name": self.display_name,
            "stock_count": self.stock_count,
            "description": self.description,
            "image_url": self.image_url,
        }


def _clamped(delta: int):
    """SQL expression for max(stock_count + delta, 0)."""
    return case(
        (Drink.stock_count + delta < 0, 0),
        else_=Drink.stock_count + delta,
    )


class StockLedger:
    """Stock operations over the ``drinks`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, canonical_id: str) -> asyncio.Lock:
        return self._locks.setdefault(canonical_id, asyncio.Lock())

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, drink_id: int) -> StockRecord:
        async with self._session_maker() as session:
            drink = await session.get(Drink, drink_id)
            if drink is None:
                raise DrinkNotFound(drink_id)
            return StockRecord.from_model(drink)

    async def get_by_canonical(self, canonical_id: str) -> Optional[StockRecord]:
        async with self._session_maker() as session:
            drink = await session.scalar(
                select(Drink).where(Drink.canonical == canonical_id)
            )
            return StockRecord.from_model(drink) if drink else None

    async def check_available(self, canonical_id: str) -> StockRecord:
        """
        Return the stock record if at least one unit is left.

        A drink that is in the catalog but missing from the table counts as
        sold out.

        Raises:
            OutOfStock: no row or stock at zero
        """
        record = await self.get_by_canonical(canonical_id)
        if record is None or record.stock_count <= 0:
            raise OutOfStock(canonical_id)
        return record

    async def list_menu(self) -> list[StockRecord]:
        async with self._session_maker() as session:
            result = await session.execute(select(Drink).order_by(Drink.display_name))
            return [StockRecord.from_model(d) for d in result.scalars().all()]

    # =========================================================================
    # ORDER PATH
    # =========================================================================

    async def reserve(self, canonical_id: str) -> StockRecord:
        """
        Atomically take one unit of a drink for an order.

        Raises:
            OutOfStock: the drink has no units left (or no stock row)
        """
        async with self._lock_for(canonical_id):
            async with self._session_maker() as session:
                result = await session.execute(
                    update(Drink)
                    .where(Drink.canonical == canonical_id, Drink.stock_count > 0)
                    .values(stock_count=Drink.stock_count - 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    logger.info(f"Sold out: {canonical_id}")
                    raise OutOfStock(canonical_id)

                await session.commit()
                drink = await session.scalar(
                    select(Drink).where(Drink.canonical == canonical_id)
                )
                logger.info(f"Stock {canonical_id}: {drink.stock_count} left")
                return StockRecord.from_model(drink)

    async def release(self, canonical_id: str) -> None:
        """Give back a unit taken by :meth:`reserve` for an order that was not queued."""
        async with self._lock_for(canonical_id):
            async with self._session_maker() as session:
                await session.execute(
                    update(Drink)
                    .where(Drink.canonical == canonical_id)
                    .values(stock_count=Drink.stock_count + 1)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        logger.warning(f"Released one unit of {canonical_id}")

    async def decrement_on_order(self, drink_id: int) -> StockRecord:
        """Take one unit by drink id; a drink already at zero stays at zero."""
        return await self.adjust_delta(drink_id, -1)

    # =========================================================================
    # ADMIN OPERATIONS
    # =========================================================================

    async def adjust_delta(self, drink_id: int, delta: int) -> StockRecord:
        """Add ``delta`` (may be negative); the result is floored at zero."""
        async with self._session_maker() as session:
            result = await session.execute(
                update(Drink)
                .where(Drink.id == drink_id)
                .values(stock_count=_clamped(delta))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise DrinkNotFound(drink_id)
            await session.commit()

        record = await self.get(drink_id)
        logger.info(f"Stock {record.canonical_id} adjusted by {delta:+d} → {record.stock_count}")
        return record

    async def set_absolute(self, drink_id: int, value: int) -> StockRecord:
        if value < 0:
            raise InvalidStockValue(f"Stock cannot be negative (got {value})")

        async with self._session_maker() as session:
            result = await session.execute(
                update(Drink)
                .where(Drink.id == drink_id)
                .values(stock_count=value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise DrinkNotFound(drink_id)
            await session.commit()

        logger.info(f"Stock of drink {drink_id} set to {value}")
        return await self.get(drink_id)

    async def create_drink(
        self,
        canonical_id: str,
        display_name: str,
        initial_stock: int = 0,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> StockRecord:
        if initial_stock < 0:
            raise InvalidStockValue(f"Stock cannot be negative (got {initial_stock})")

        drink = Drink(
            canonical=canonical_id,
            display_name=display_name,
            stock_count=initial_stock,
            description=description,
            image_url=image_url,
        )
        async with self._session_maker() as session:
            session.add(drink)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateDrink(canonical_id) from e
            await session.refresh(drink)

        logger.info(f"Drink created: {canonical_id} ({initial_stock} in stock)")
        return StockRecord.from_model(drink)

    async def delete_drink(self, drink_id: int) -> None:
        async with self._session_maker() as session:
            result = await session.execute(delete(Drink).where(Drink.id == drink_id))
            if result.rowcount == 0:
                await session.rollback()
                raise DrinkNotFound(drink_id)
            await session.commit()
        logger.info(f"Drink {drink_id} deleted")

    async def seed(self, entries: Iterable[DrinkCatalogEntry]) -> int:
        """
        Upsert catalog drinks keyed by canonical id.

        New drinks start at zero stock; existing rows only get their display
        name refreshed, stock is never reset.
        """
        count = 0
        async with self._session_maker() as session:
            existing = {
                d.canonical: d
                for d in (await session.execute(select(Drink))).scalars().all()
            }
            for entry in entries:
                drink = existing.get(entry.canonical_id)
                if drink is None:
                    session.add(Drink(
                        canonical=entry.canonical_id,
                        display_name=entry.display_name,
                        stock_count=0,
                    ))
                else:
                    drink.display_name = entry.display_name
                count += 1
                logger.debug(f"  ✓ {entry.display_name}")
            await session.commit()

        logger.info(f"✅ Seeded {count} drinks")
        return count
