"""Unit tests for the Discord notification sink."""

import json

import httpx
import pytest
import respx

from atelier.business.order_status import OrderStatus
from atelier.integrations.discord.notifier import DiscordNotifier, build_status_embed


WEBHOOK = "https://discord.test/api/webhooks/1/abc"


@pytest.mark.unit
class TestStatusEmbed:

    def test_embed_fields(self):
        embed = build_status_embed(
            1, OrderStatus.ORDER_READY, OrderStatus.ON_HOLD, "escalation-scheduler",
            order_name="#1042", customer_name="Mona Adel",
        )

        assert embed["color"] == 0xFFD700
        assert embed["footer"] == {"text": "Order ID: 1"}
        values = {field["name"]: field["value"] for field in embed["fields"]}
        assert values["Order"] == "**#1042**"
        assert values["Customer"] == "Mona Adel"
        assert values["Status Change"] == "`Order Ready` → `On Hold`"
        assert values["Updated By"] == "escalation-scheduler"

    def test_embed_without_actor(self):
        embed = build_status_embed(1, OrderStatus.SHIPPED, OrderStatus.FULFILLED)

        assert [field["name"] for field in embed["fields"]] == ["Order", "Customer", "Status Change"]


@pytest.mark.unit
class TestDiscordNotifier:

    @respx.mock
    @pytest.mark.asyncio
    async def test_notify_posts_in_background(self):
        route = respx.post(WEBHOOK).mock(return_value=httpx.Response(204))
        notifier = DiscordNotifier(webhook_url=WEBHOOK)

        notifier.notify(1, OrderStatus.SHIPPED, OrderStatus.FULFILLED, "carrier-reconciliation", order_name="#1")
        await notifier.drain()

        assert route.call_count == 1
        body = json.loads(route.calls.last.request.content)
        assert body["embeds"][0]["title"] == "📦 Order Status Updated"

    @respx.mock
    @pytest.mark.asyncio
    async def test_notify_without_webhook_is_a_no_op(self):
        route = respx.post(WEBHOOK).mock(return_value=httpx.Response(204))
        notifier = DiscordNotifier(webhook_url="")

        notifier.notify(1, OrderStatus.SHIPPED, OrderStatus.FULFILLED)
        await notifier.drain()

        assert route.call_count == 0

    @respx.mock
    @pytest.mark.asyncio
    async def test_failures_never_raise_and_open_the_circuit(self):
        route = respx.post(WEBHOOK).mock(return_value=httpx.Response(500))
        notifier = DiscordNotifier(webhook_url=WEBHOOK)

        for order_id in range(5):
            notifier.notify(order_id, OrderStatus.SHIPPED, OrderStatus.FULFILLED)
            await notifier.drain()

        assert route.call_count == 3
