"""Integration tests for the HTTP surface with in-memory adapters."""

import pytest

from atelier.business.labels import decode
from atelier.business.order_status import OrderStatus
from atelier.errors import AdapterRequestError
from tests.fakes import make_order, parcel


def webhook_body(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA",
            "changes": [{"field": "messages", "value": {"messaging_product": "whatsapp", "messages": list(messages)}}],
        }],
    }


def button_message(message_id, context_id=None, text="Yes, I'll be available", phone="201001234567"):
    message = {
        "id": message_id,
        "from": phone,
        "timestamp": "1736000000",
        "type": "button",
        "button": {"text": text, "payload": text},
    }
    if context_id:
        message["context"] = {"from": "15550001111", "id": context_id}
    return message


@pytest.mark.integration
class TestHealthAndMetrics:

    @pytest.mark.asyncio
    async def test_health(self, app_client):
        response = await app_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["degraded"] is False
        assert "X-Correlation-Id" in response.headers

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, app_client):
        response = await app_client.get("/health", headers={"X-Correlation-Id": "abc-123"})

        assert response.headers["X-Correlation-Id"] == "abc-123"

    @pytest.mark.asyncio
    async def test_metrics(self, app_client):
        response = await app_client.get("/metrics")

        assert response.status_code == 200
        assert "atelier_" in response.text


@pytest.mark.integration
class TestJobTriggers:

    @pytest.mark.asyncio
    async def test_run_escalation(self, app_client, store):
        store.add(make_order(1, "order_ready, order_ready_date:2025-01-01"))

        response = await app_client.post("/jobs/escalation/run", params={"today": "2025-01-03"})

        assert response.status_code == 200
        body = response.json()
        assert body["job"] == "escalation"
        assert body["today"] == "2025-01-03"
        assert body["passes"]["hold"]["successful"] == 1
        assert decode(store.orders[1].tags).status is OrderStatus.ON_HOLD

    @pytest.mark.asyncio
    async def test_run_escalation_rejects_bad_date(self, app_client):
        response = await app_client.post("/jobs/escalation/run", params={"today": "03/01/2025"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_run_carrier_reconciliation(self, app_client, store, carrier):
        store.add(make_order(1, "shipped, shipping_barcode:AB1, shipping_date:2025-01-08"))
        carrier.parcels = [parcel("AB1", "Delivered")]

        response = await app_client.post("/jobs/carrier-reconciliation/run", params={"today": "2025-01-10"})

        assert response.status_code == 200
        assert response.json()["parcels_fetched"] == 1
        assert decode(store.orders[1].tags).status is OrderStatus.FULFILLED

    @pytest.mark.asyncio
    async def test_carrier_login_failure_is_bad_gateway(self, app_client, carrier):
        carrier.auth_error = True

        response = await app_client.post("/jobs/carrier-reconciliation/run")

        assert response.status_code == 502
        assert "aborted" in response.json()["detail"]


@pytest.mark.integration
class TestWhatsAppWebhook:

    @pytest.mark.asyncio
    async def test_verification_handshake(self, app_client):
        response = await app_client.get("/whatsapp/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "verify-me",
            "hub.challenge": "1158201444",
        })

        assert response.status_code == 200
        assert response.text == "1158201444"

    @pytest.mark.asyncio
    async def test_verification_with_wrong_token(self, app_client):
        response = await app_client.get("/whatsapp/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "nope",
            "hub.challenge": "1158201444",
        })

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_confirmation_reply_confirms_order(self, app_client, store, correlator):
        order = store.add(make_order(1, "order_ready, order_ready_date:2025-01-01"))
        message_id = await correlator.request_confirmation(order)

        response = await app_client.post(
            "/whatsapp/webhook",
            json=webhook_body(button_message("wamid.in.1", context_id=message_id)),
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "received": 1, "matched": 1, "ignored": 0, "failed": 0}
        assert decode(store.orders[1].tags).status is OrderStatus.CUSTOMER_CONFIRMED

    @pytest.mark.asyncio
    async def test_store_rejection_is_still_acknowledged(self, app_client, store):
        store.phone_lookup_error = AdapterRequestError("shopify", "GET /orders.json returned 403", 403)

        response = await app_client.post("/whatsapp/webhook", json=webhook_body(button_message("wamid.in.3")))

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "received": 1, "matched": 0, "ignored": 0, "failed": 1}

    @pytest.mark.asyncio
    async def test_other_messages_are_acknowledged(self, app_client, store):
        store.add(make_order(1, "order_ready, order_ready_date:2025-01-01"))
        text_message = {"id": "wamid.in.2", "from": "201001234567", "type": "text", "text": {"body": "hello"}}

        response = await app_client.post("/whatsapp/webhook", json=webhook_body(text_message))

        assert response.status_code == 200
        assert response.json()["ignored"] == 1
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_status_callbacks_carry_no_replies(self, app_client):
        body = {"object": "whatsapp_business_account", "entry": [{"changes": [{
            "field": "messages",
            "value": {"statuses": [{"id": "wamid.1", "status": "delivered"}]},
        }]}]}

        response = await app_client.post("/whatsapp/webhook", json=body)

        assert response.status_code == 200
        assert response.json()["received"] == 0


@pytest.mark.integration
class TestOrderEvents:

    @pytest.mark.asyncio
    async def test_request_ready_sends_confirmation(self, app_client, store, messaging):
        store.add(make_order(1, "paid"))

        response = await app_client.post("/orders/1/events", json={"event": "request_ready"})

        assert response.status_code == 200
        body = response.json()
        assert body["applied"] is True
        assert body["previous_status"] == "pending"
        assert body["new_status"] == "order_ready"
        assert body["confirmation_message_id"] == "wamid.1"
        assert any(label.startswith("order_ready_date:") for label in body["labels"])
        assert len(messaging.sent) == 1

    @pytest.mark.asyncio
    async def test_request_ready_without_notification(self, app_client, store, messaging):
        store.add(make_order(1, ""))

        response = await app_client.post(
            "/orders/1/events", json={"event": "request_ready", "notify_customer": False}
        )

        assert response.status_code == 200
        assert response.json()["confirmation_message_id"] is None
        assert messaging.sent == []

    @pytest.mark.asyncio
    async def test_request_ready_when_provider_refuses_message(self, app_client, store, messaging):
        store.add(make_order(1, "paid"))
        messaging.error = AdapterRequestError("whatsapp", "send returned 400", 400)

        response = await app_client.post("/orders/1/events", json={"event": "request_ready"})

        assert response.status_code == 200
        body = response.json()
        assert body["new_status"] == "order_ready"
        assert body["confirmation_message_id"] is None
        assert decode(store.orders[1].tags).status is OrderStatus.ORDER_READY

    @pytest.mark.asyncio
    async def test_mark_ready_to_ship(self, app_client, store, notifier):
        store.add(make_order(1, "customer_confirmed, order_ready_date:2025-01-01"))

        response = await app_client.post(
            "/orders/1/events",
            json={"event": "mark_ready_to_ship", "tracking_token": "AB1", "actor": "warehouse"},
        )

        assert response.status_code == 200
        state = decode(store.orders[1].tags)
        assert state.status is OrderStatus.READY_TO_SHIP
        assert state.tracking_token == "AB1"
        assert notifier.calls[-1]["actor"] == "warehouse"

    @pytest.mark.asyncio
    async def test_illegal_event_is_conflict(self, app_client, store):
        store.add(make_order(1, "order_ready, order_ready_date:2025-01-01"))

        response = await app_client.post(
            "/orders/1/events", json={"event": "mark_ready_to_ship", "tracking_token": "AB1"}
        )

        assert response.status_code == 409
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_unknown_order(self, app_client):
        response = await app_client.post("/orders/999/events", json={"event": "manual_cancel"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_event(self, app_client, store):
        store.add(make_order(1, "paid"))

        response = await app_client.post("/orders/1/events", json={"event": "carrier_delivered"})

        assert response.status_code == 422
