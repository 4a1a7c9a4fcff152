"""
Shared pytest fixtures for the bar queue tests.

Async services are driven with ``run`` (a thin ``asyncio.run`` wrapper), so
the suite needs no async plugin. Every test gets its own SQLite database,
in-memory queue, in-memory broadcaster and recording mock transports.
"""

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from barqueue.core.config import EnvironmentMode, Settings
from barqueue.database import build_engine, build_session_maker, init_db
from barqueue.dependencies import build_services
from barqueue.main import create_app
from barqueue.services.admin_commands import AdminCommandParser
from barqueue.services.broadcast import InMemoryBroadcaster
from barqueue.services.catalog import DrinkCatalog
from barqueue.services.dispatcher import NotificationDispatcher, Recipient
from barqueue.services.notifications.mock import MockMessagingService, MockPushService
from barqueue.services.opt_out import OptOutRegistry
from barqueue.services.order_queue import InMemoryOrderQueue, SourceChannel
from barqueue.services.ordering import CampaignInfo, OrderingService
from barqueue.services.push_subscriptions import PushSubscriptionStore
from barqueue.services.resolver import DrinkResolver
from barqueue.services.stock import StockLedger

ADMIN = "+15550000001"
ALERTS = "+15550000009"
CUSTOMER = "15551234567"
MENU_URL = "https://example.com/menu"
TOKEN = "test-dashboard-token"

CATALOG_DATA = {
    "margarita": {"canonical": "margarita", "display": "Margarita"},
    "marg": {"canonical": "margarita", "display": "Margarita"},
    "mojito": {"canonical": "mojito", "display": "Mojito"},
    "old fashioned": {"canonical": "old_fashioned", "display": "Old Fashioned"},
    "gin and tonic": {"canonical": "gin_tonic", "display": "Gin & Tonic"},
    "g&t": {"canonical": "gin_tonic", "display": "Gin & Tonic"},
}


def run(coro):
    """Run a coroutine to completion in a fresh event loop."""
    return asyncio.run(coro)


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def catalog() -> DrinkCatalog:
    return DrinkCatalog.from_mapping(CATALOG_DATA)


@pytest.fixture
def resolver(catalog: DrinkCatalog) -> DrinkResolver:
    return DrinkResolver(catalog, noise_phrases=["take a minute"])


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'bar.db'}"


@pytest.fixture
def engine(database_url: str):
    engine = build_engine(database_url)
    run(init_db(engine))
    yield engine
    run(engine.dispose())


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def ledger(session_maker, catalog: DrinkCatalog) -> StockLedger:
    """Ledger with every catalog drink seeded at zero stock."""
    ledger = StockLedger(session_maker)
    run(ledger.seed(catalog.snapshot()))
    return ledger


@pytest.fixture
def push_store(session_maker) -> PushSubscriptionStore:
    return PushSubscriptionStore(session_maker)


@pytest.fixture
def queue() -> InMemoryOrderQueue:
    return InMemoryOrderQueue()


@pytest.fixture
def broadcaster() -> InMemoryBroadcaster:
    return InMemoryBroadcaster()


# =============================================================================
# Transport Fixtures
# =============================================================================

@pytest.fixture
def whatsapp() -> MockMessagingService:
    """Recording WhatsApp transport."""
    return MockMessagingService(channel="whatsapp")


@pytest.fixture
def sms() -> MockMessagingService:
    """Recording SMS transport."""
    return MockMessagingService(channel="sms")


@pytest.fixture
def push() -> MockPushService:
    return MockPushService()


@pytest.fixture
def redeliveries() -> list:
    """(channel, to, body) tuples handed to the redelivery hook."""
    return []


@pytest.fixture
def dispatcher(whatsapp, sms, push, push_store, broadcaster, redeliveries) -> NotificationDispatcher:
    return NotificationDispatcher(
        messaging={"whatsapp": whatsapp, "sms": sms},
        broadcaster=broadcaster,
        push=push,
        push_store=push_store,
        opt_out=OptOutRegistry(),
        admin_recipients=[Recipient(SourceChannel.WHATSAPP, ALERTS)],
        redelivery=lambda channel, to, body: redeliveries.append((channel, to, body)),
    )


@pytest.fixture
def ordering(catalog, resolver, queue, ledger, dispatcher) -> OrderingService:
    return OrderingService(
        catalog=catalog,
        resolver=resolver,
        queue=queue,
        ledger=ledger,
        dispatcher=dispatcher,
        admin_parser=AdminCommandParser([ADMIN]),
        campaign=CampaignInfo(menu_url=MENU_URL),
    )


# =============================================================================
# API Fixtures
# =============================================================================

@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    import json

    path = tmp_path / "drinks.json"
    path.write_text(json.dumps(CATALOG_DATA), encoding="utf-8")
    return path


@pytest.fixture
def settings(database_url: str, catalog_file: Path) -> Settings:
    return Settings(
        env_mode=EnvironmentMode.DEVELOPMENT,
        database_url=database_url,
        drink_catalog_path=str(catalog_file),
        admin_numbers=ADMIN,
        admin_alert_numbers=ALERTS,
        dashboard_token=TOKEN,
        whatsapp_verify_token="verify-me",
        menu_url=MENU_URL,
        _env_file=None,
    )


@pytest.fixture
def services(settings: Settings, queue, broadcaster, dispatcher):
    return build_services(
        settings,
        catalog=DrinkCatalog.from_file(settings.drink_catalog_path),
        queue=queue,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
    )


@pytest.fixture
def client(services):
    """TestClient running the app lifespan (tables created, catalog seeded)."""
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TOKEN}"}
