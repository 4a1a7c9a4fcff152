"""
Application service container.

Everything that holds state (engine, catalog, queue, broadcaster, opt-out
registry) is built once when the app starts and reached from request
handlers through ``request.app.state.services``. Tests build their own
container with in-memory backings and hand it to ``create_app``.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from barqueue.core.config import Settings, get_settings
from barqueue.core.exceptions import Unauthorized
from barqueue.database import build_engine, build_session_maker, init_db
from barqueue.services.admin_commands import AdminCommandParser
from barqueue.services.broadcast import BaseBroadcaster, get_broadcaster
from barqueue.services.catalog import DrinkCatalog
from barqueue.services.dispatcher import NotificationDispatcher, Recipient
from barqueue.services.notifications import get_messaging_service, get_push_service
from barqueue.services.opt_out import OptOutRegistry
from barqueue.services.order_queue import BaseOrderQueue, SourceChannel, get_order_queue
from barqueue.services.ordering import CampaignInfo, OrderingService
from barqueue.services.push_subscriptions import PushSubscriptionStore
from barqueue.services.resolver import DrinkResolver
from barqueue.services.stock import StockLedger

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: Settings
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    catalog: DrinkCatalog
    resolver: DrinkResolver
    admin_parser: AdminCommandParser
    queue: BaseOrderQueue
    ledger: StockLedger
    push_store: PushSubscriptionStore
    broadcaster: BaseBroadcaster
    dispatcher: NotificationDispatcher
    ordering: OrderingService

    async def startup(self) -> None:
        await init_db(self.engine)
        if self.settings.seed_on_startup:
            await self.ledger.seed(self.catalog.snapshot())

    async def shutdown(self) -> None:
        await self.queue.close()
        await self.broadcaster.close()
        for transport in self.dispatcher.messaging.values():
            await transport.close()
        if self.dispatcher.push is not None:
            await self.dispatcher.push.close()
        await self.engine.dispose()


def build_services(
    settings: Optional[Settings] = None,
    catalog: Optional[DrinkCatalog] = None,
    queue: Optional[BaseOrderQueue] = None,
    broadcaster: Optional[BaseBroadcaster] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    engine: Optional[AsyncEngine] = None,
) -> AppServices:
    """
    Wire the ordering core from settings.

    Any argument given replaces the component the settings would select.

    Raises:
        CatalogError: the catalog file cannot be loaded
    """
    settings = settings or get_settings()

    engine = engine or build_engine(settings.database_url, settings.database_echo)
    session_maker = build_session_maker(engine)

    catalog = catalog or DrinkCatalog.from_file(settings.drink_catalog_path)
    resolver = DrinkResolver(catalog, settings.noise_phrases_list)
    admin_parser = AdminCommandParser(settings.admin_numbers_list, settings.admin_open_mode)
    queue = queue or get_order_queue()
    ledger = StockLedger(session_maker)
    push_store = PushSubscriptionStore(session_maker)
    broadcaster = broadcaster or get_broadcaster()

    if dispatcher is None:
        redelivery = None
        if settings.redelivery_enabled:
            from barqueue.tasks import schedule_redelivery
            redelivery = schedule_redelivery

        dispatcher = NotificationDispatcher(
            messaging={
                SourceChannel.WHATSAPP.value: get_messaging_service(SourceChannel.WHATSAPP.value),
                SourceChannel.SMS.value: get_messaging_service(SourceChannel.SMS.value),
            },
            broadcaster=broadcaster,
            push=get_push_service(),
            push_store=push_store,
            opt_out=OptOutRegistry(),
            admin_recipients=[
                Recipient(SourceChannel.WHATSAPP, number)
                for number in settings.admin_alert_numbers_list
            ],
            redelivery=redelivery,
        )

    ordering = OrderingService(
        catalog=catalog,
        resolver=resolver,
        queue=queue,
        ledger=ledger,
        dispatcher=dispatcher,
        admin_parser=admin_parser,
        campaign=CampaignInfo(
            menu_url=settings.menu_url,
            campaign_name=settings.campaign_name,
            support_email=settings.support_email,
            support_phone=settings.support_phone,
            privacy_url=settings.privacy_url,
        ),
    )

    return AppServices(
        settings=settings,
        engine=engine,
        session_maker=session_maker,
        catalog=catalog,
        resolver=resolver,
        admin_parser=admin_parser,
        queue=queue,
        ledger=ledger,
        push_store=push_store,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        ordering=ordering,
    )


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_ordering(request: Request) -> OrderingService:
    return request.app.state.services.ordering


def require_admin(
    services: AppServices = Depends(get_services),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """Guard for dashboard endpoints: ``Authorization: Bearer <DASHBOARD_TOKEN>``."""
    expected = services.settings.dashboard_token
    if not expected:
        if services.settings.is_development:
            return
        raise Unauthorized("Admin endpoints are disabled: DASHBOARD_TOKEN is not set")

    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), expected.encode()
    ):
        raise Unauthorized()
