"""HTTP surface tests using FastAPI's TestClient."""

from fastapi.testclient import TestClient

from tests.conftest import ADMIN, ALERTS, CUSTOMER

CUSTOMER_E164 = "+" + CUSTOMER


def whatsapp_payload(text: str, sender: str = CUSTOMER, name: str = "Alice Smith") -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "changes": [{
                "value": {
                    "contacts": [{"profile": {"name": name}, "wa_id": sender}],
                    "messages": [{"from": sender, "type": "text", "text": {"body": text}}],
                }
            }]
        }],
    }


def drink(client: TestClient, canonical: str) -> dict:
    return next(d for d in client.get("/menu").json() if d["canonical"] == canonical)


def stock(client: TestClient, auth_headers: dict, canonical: str, value: int) -> dict:
    response = client.post(
        "/stock",
        json={"id": drink(client, canonical)["id"], "absolute": value},
        headers=auth_headers,
    )
    assert response.status_code == 200
    return response.json()


class TestPublicEndpoints:

    def test_ping(self, client: TestClient):
        response = client.get("/ping")
        assert response.status_code == 200
        assert "alive" in response.text

    def test_health(self, client: TestClient):
        data = client.get("/health").json()
        assert data["status"] == "operational"
        assert data["database"] == "healthy"
        assert data["transports"] == {"whatsapp": "healthy", "sms": "healthy"}

    def test_menu_is_seeded_at_startup(self, client: TestClient):
        menu = client.get("/menu").json()
        assert {d["canonical"] for d in menu} == {"margarita", "mojito", "old_fashioned", "gin_tonic"}
        assert all(d["stock_count"] == 0 for d in menu)


class TestAdminAuth:

    def test_missing_token(self, client: TestClient):
        response = client.get("/queue")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_wrong_token(self, client: TestClient):
        response = client.get("/queue", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_valid_token(self, client: TestClient, auth_headers: dict):
        response = client.get("/queue", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"total": 0, "orders": []}


class TestWhatsAppWebhook:

    def test_verification_handshake(self, client: TestClient):
        response = client.get("/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "verify-me",
            "hub.challenge": "12345",
        })
        assert response.status_code == 200
        assert response.text == "12345"

    def test_verification_rejects_wrong_token(self, client: TestClient):
        response = client.get("/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "wrong",
            "hub.challenge": "12345",
        })
        assert response.status_code == 403

    def test_order_flow(self, client: TestClient, auth_headers: dict, whatsapp):
        stock(client, auth_headers, "margarita", 2)

        response = client.post("/webhook", json=whatsapp_payload("I'd like to order the Margarita!"))

        assert response.status_code == 200
        assert response.json() == {"status": "order_placed"}
        queue = client.get("/queue", headers=auth_headers).json()
        assert queue["total"] == 1
        assert queue["orders"][0]["customer_display_name"] == "Alice"
        assert drink(client, "margarita")["stock_count"] == 1
        assert whatsapp.messages_to(ALERTS)

    def test_status_callback_is_ignored(self, client: TestClient):
        payload = {"entry": [{"changes": [{"value": {"statuses": [{"status": "read"}]}}]}]}
        response = client.post("/webhook", json=payload)
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    def test_malformed_payload_is_acknowledged(self, client: TestClient):
        response = client.post("/webhook", json={"unexpected": True})
        assert response.status_code == 200

    def test_admin_serves_from_whatsapp(self, client: TestClient, auth_headers: dict, whatsapp):
        stock(client, auth_headers, "mojito", 1)
        client.post("/webhook", json=whatsapp_payload("mojito"))

        response = client.post("/webhook", json=whatsapp_payload("1", sender=ADMIN))

        assert response.json() == {"status": "admin_command"}
        assert client.get("/queue", headers=auth_headers).json()["total"] == 0
        assert '🍸 Your "Mojito" is ready!' in whatsapp.messages_to(CUSTOMER_E164)


class TestSmsWebhook:

    def test_order_by_sms(self, client: TestClient, auth_headers: dict, sms):
        stock(client, auth_headers, "mojito", 1)
        response = client.post("/sms-webhook", data={"From": CUSTOMER_E164, "Body": "Mojito"})
        assert response.status_code == 200
        assert client.get("/queue", headers=auth_headers).json()["orders"][0]["source_channel"] == "sms"
        assert sms.messages_to(CUSTOMER_E164)

    def test_invalid_order_still_200(self, client: TestClient, sms):
        response = client.post("/sms-webhook", data={"From": CUSTOMER_E164, "Body": "zzz"})
        assert response.status_code == 200
        [reply] = sms.messages_to(CUSTOMER_E164)
        assert reply.startswith('Invalid order "zzz".')


class TestDirectOrders:

    def test_create_order(self, client: TestClient, auth_headers: dict):
        stock(client, auth_headers, "gin_tonic", 1)
        response = client.post("/api/orders", json={"drink_text": "G&T", "client_tag": "tag-1"})
        assert response.status_code == 201
        body = response.json()
        assert body["canonical_drink_id"] == "gin_tonic"
        assert body["source_channel"] == "web"

    def test_unresolved_is_400(self, client: TestClient):
        response = client.post("/api/orders", json={"drink_text": "asdf no such drink"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid order"

    def test_sold_out_is_409(self, client: TestClient):
        response = client.post("/api/orders", json={"canonical_id": "mojito"})
        assert response.status_code == 409

    def test_drink_required(self, client: TestClient):
        assert client.post("/api/orders", json={"customer_name": "Bob"}).status_code == 422

    def test_push_on_ready(self, client: TestClient, auth_headers: dict, push):
        stock(client, auth_headers, "mojito", 1)
        client.post("/api/push/subscribe", json={"client_tag": "tag-9", "player_id": "player-9"})
        order = client.post("/api/orders", json={"canonical_id": "mojito", "client_tag": "tag-9"}).json()

        response = client.post("/done", json={"id": order["id"]}, headers=auth_headers)

        assert response.status_code == 200
        assert [m.to for m in push.sent] == ["player-9"]


class TestDashboard:

    def test_done_twice_is_404(self, client: TestClient, auth_headers: dict):
        stock(client, auth_headers, "mojito", 1)
        order = client.post("/api/orders", json={"drink_text": "mojito"}).json()

        assert client.post("/done", json={"id": order["id"]}, headers=auth_headers).status_code == 200
        assert client.post("/done", json={"id": order["id"]}, headers=auth_headers).status_code == 404

    def test_serve_position(self, client: TestClient, auth_headers: dict):
        stock(client, auth_headers, "mojito", 2)
        first = client.post("/api/orders", json={"drink_text": "mojito"}).json()
        client.post("/api/orders", json={"drink_text": "mojito"})

        response = client.post("/serve/1", headers=auth_headers)

        assert response.json()["id"] == first["id"]
        assert client.post("/serve/5", headers=auth_headers).status_code == 404

    def test_clear(self, client: TestClient, auth_headers: dict):
        stock(client, auth_headers, "mojito", 3)
        for _ in range(2):
            client.post("/api/orders", json={"drink_text": "mojito"})

        assert client.post("/clear", headers=auth_headers).json() == {"success": True, "cleared": 2}
        assert drink(client, "mojito")["stock_count"] == 1


class TestStockEndpoints:

    def test_delta_clamped(self, client: TestClient, auth_headers: dict):
        mojito = stock(client, auth_headers, "mojito", 2)
        response = client.post("/stock", json={"id": mojito["id"], "delta": -5}, headers=auth_headers)
        assert response.json()["stock_count"] == 0

    def test_negative_absolute_is_400(self, client: TestClient, auth_headers: dict):
        mojito = drink(client, "mojito")
        response = client.post("/stock", json={"id": mojito["id"], "absolute": -1}, headers=auth_headers)
        assert response.status_code == 400

    def test_both_delta_and_absolute_rejected(self, client: TestClient, auth_headers: dict):
        response = client.post("/stock", json={"id": 1, "delta": 1, "absolute": 1}, headers=auth_headers)
        assert response.status_code == 422

    def test_unknown_drink_is_404(self, client: TestClient, auth_headers: dict):
        response = client.post("/stock", json={"id": 9999, "delta": 1}, headers=auth_headers)
        assert response.status_code == 404

    def test_add_and_delete_drink(self, client: TestClient, auth_headers: dict):
        response = client.post(
            "/drinks",
            json={"canonical": "negroni", "display_name": "Negroni", "stock_count": 3},
            headers=auth_headers,
        )
        assert response.status_code == 201
        created = response.json()

        assert client.post("/api/orders", json={"drink_text": "negroni"}).status_code == 201
        assert client.post("/drinks", json={"canonical": "negroni", "display_name": "Negroni"},
                           headers=auth_headers).status_code == 409

        assert client.delete(f"/drinks/{created['id']}", headers=auth_headers).status_code == 200
        assert client.delete(f"/drinks/{created['id']}", headers=auth_headers).status_code == 404


class TestCatalogEndpoints:

    def test_reload_picks_up_new_drink(self, client: TestClient, auth_headers: dict, catalog_file):
        import json

        data = json.loads(catalog_file.read_text())
        data["negroni"] = {"canonical": "negroni", "display": "Negroni"}
        catalog_file.write_text(json.dumps(data))

        response = client.post("/admin/reload-drinks", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["drinks"] == 5
        assert drink(client, "negroni")["stock_count"] == 0

    def test_broken_catalog_keeps_previous(self, client: TestClient, auth_headers: dict, catalog_file):
        catalog_file.write_text("{ broken")

        response = client.post("/admin/reload-drinks", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "Catalog error"
        assert client.post("/api/orders", json={"drink_text": "mojito"}).status_code == 409

    def test_seed(self, client: TestClient, auth_headers: dict):
        response = client.post("/admin/seed", headers=auth_headers)
        assert response.json() == {"success": True, "seeded": 4}
