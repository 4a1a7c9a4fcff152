"""Push subscription records keyed by web client tag."""

import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from barqueue.models import PushSubscription

logger = logging.getLogger(__name__)


class PushSubscriptionStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def register(self, client_tag: str, player_id: str) -> None:
        """Create or replace the push target for a client tag."""
        async with self._session_maker() as session:
            subscription = await session.scalar(
                select(PushSubscription).where(PushSubscription.client_tag == client_tag)
            )
            if subscription is None:
                session.add(PushSubscription(client_tag=client_tag, player_id=player_id))
            else:
                subscription.player_id = player_id
            await session.commit()
        logger.info(f"Push subscription registered for {client_tag}")

    async def get_player_id(self, client_tag: str) -> Optional[str]:
        async with self._session_maker() as session:
            return await session.scalar(
                select(PushSubscription.player_id).where(PushSubscription.client_tag == client_tag)
            )

    async def remove(self, client_tag: str) -> bool:
        async with self._session_maker() as session:
            result = await session.execute(
                delete(PushSubscription).where(PushSubscription.client_tag == client_tag)
            )
            await session.commit()
        removed = result.rowcount > 0
        if removed:
            logger.info(f"Removed stale push subscription for {client_tag}")
        return removed
