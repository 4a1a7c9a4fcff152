"""Provider transports against mocked HTTP, and the redelivery task."""

import json

import httpx
import pytest

from barqueue.core.config import get_settings
from barqueue.core.exceptions import TransportFailure
from barqueue.services.notifications import get_messaging_service, reset_notification_services
from barqueue.services.notifications.mock import MockMessagingService
from barqueue.services.notifications.onesignal import OneSignalPushService
from barqueue.services.notifications.twilio_sms import TwilioSMSService
from barqueue.services.notifications.whatsapp import WhatsAppService

from tests.conftest import run


@pytest.fixture
def provider_env(monkeypatch):
    """Credentials for every provider; settings cache is reset around the test."""
    for key, value in {
        "WHATSAPP_PHONE_NUMBER_ID": "1234",
        "WHATSAPP_ACCESS_TOKEN": "wa-token",
        "WHATSAPP_API_VERSION": "v19.0",
        "ONESIGNAL_APP_ID": "app-1",
        "ONESIGNAL_API_KEY": "os-key",
    }.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    reset_notification_services()


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestWhatsAppService:

    def test_sends_graph_payload(self, provider_env):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

        async def scenario():
            service = WhatsAppService(client=mock_client(handler))
            try:
                return await service.send_text("+15551234567", "hello")
            finally:
                await service.close()

        result = run(scenario())

        assert result.message_id == "wamid.1"
        [request] = seen
        assert str(request.url) == "https://graph.facebook.com/v19.0/1234/messages"
        assert request.headers["Authorization"] == "Bearer wa-token"
        assert json.loads(request.content) == {
            "messaging_product": "whatsapp",
            "to": "15551234567",
            "text": {"body": "hello"},
        }

    def test_provider_error_carries_status(self, provider_env):
        async def scenario():
            service = WhatsAppService(client=mock_client(lambda r: httpx.Response(401, text="bad token")))
            try:
                await service.send_text("+15551234567", "hello")
            finally:
                await service.close()

        with pytest.raises(TransportFailure) as exc_info:
            run(scenario())
        assert exc_info.value.provider_status == 401

    def test_network_error(self, provider_env):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        async def scenario():
            service = WhatsAppService(client=mock_client(handler))
            try:
                await service.send_text("+15551234567", "hello")
            finally:
                await service.close()

        with pytest.raises(TransportFailure) as exc_info:
            run(scenario())
        assert exc_info.value.provider_status is None


class TestOneSignalPushService:

    def push(self, response: httpx.Response):
        async def scenario():
            service = OneSignalPushService(client=mock_client(lambda r: response))
            try:
                return await service.send_push("player-1", "Ready", "Your drink is ready")
            finally:
                await service.close()

        return run(scenario())

    def test_success(self, provider_env):
        result = self.push(httpx.Response(200, json={"id": "notif-1", "recipients": 1}))
        assert result.message_id == "notif-1"

    def test_invalid_player_is_stale(self, provider_env):
        with pytest.raises(TransportFailure) as exc_info:
            self.push(httpx.Response(200, json={"errors": {"invalid_player_ids": ["player-1"]}}))
        assert exc_info.value.is_stale_target

    def test_not_subscribed_error_list_is_stale(self, provider_env):
        with pytest.raises(TransportFailure) as exc_info:
            self.push(httpx.Response(200, json={"errors": ["All included players are not subscribed"]}))
        assert exc_info.value.is_stale_target

    def test_server_error_is_not_stale(self, provider_env):
        with pytest.raises(TransportFailure) as exc_info:
            self.push(httpx.Response(503, text="unavailable"))
        assert not exc_info.value.is_stale_target


class TestTwilioSMSService:

    def test_unconfigured_raises(self, monkeypatch):
        monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
        monkeypatch.delenv("TWILIO_AUTH_TOKEN", raising=False)
        get_settings.cache_clear()
        try:
            service = TwilioSMSService()
            with pytest.raises(TransportFailure):
                run(service.send_text("+15551234567", "hi"))
            assert not run(service.health_check())
        finally:
            get_settings.cache_clear()

    def test_client_uses_transport_timeout(self, monkeypatch):
        monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC" + "0" * 32)
        monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
        monkeypatch.setenv("TRANSPORT_TIMEOUT_SECONDS", "4.5")
        get_settings.cache_clear()
        try:
            service = TwilioSMSService()
            assert service.twilio_client.http_client.timeout == 4.5
        finally:
            get_settings.cache_clear()


class TestFactory:

    def test_development_uses_mock(self, monkeypatch):
        monkeypatch.setenv("ENV_MODE", "development")
        get_settings.cache_clear()
        reset_notification_services()
        try:
            assert isinstance(get_messaging_service("sms"), MockMessagingService)
            with pytest.raises(ValueError):
                get_messaging_service("web")
        finally:
            get_settings.cache_clear()
            reset_notification_services()


class TestRedeliveryTask:

    def test_redeliver_sends_through_channel_transport(self, monkeypatch):
        from barqueue import tasks

        transport = MockMessagingService("sms")
        monkeypatch.setattr(tasks, "build_messaging_service", lambda channel: transport)

        result = tasks.redeliver_message.apply(args=("sms", "+15551234567", "ready")).get()

        assert result["success"] is True
        assert transport.messages_to("+15551234567") == ["ready"]

    def test_worker_config(self):
        from barqueue import tasks  # noqa: F401
        from barqueue.celery_worker import celery_app

        assert celery_app.conf.task_default_queue == "redelivery"
        assert celery_app.conf.task_acks_late is True
        assert celery_app.conf.task_time_limit > 0
        assert "barqueue.tasks.redeliver_message" in celery_app.tasks

    def test_schedule_redelivery_enqueues(self, monkeypatch):
        from barqueue import tasks

        queued = []
        monkeypatch.setattr(tasks.redeliver_message, "delay", lambda *args: queued.append(args))

        tasks.schedule_redelivery("whatsapp", "+15551234567", "hi")

        assert queued == [("whatsapp", "+15551234567", "hi")]
