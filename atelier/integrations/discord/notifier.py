# ==== DISCORD STATUS NOTIFICATIONS ==== #

"""
Discord webhook notification sink.

``notify`` never blocks and never raises: it schedules the webhook call as a
background task and returns. Failures are logged and counted, and a circuit
breaker stops posting to a webhook that keeps failing.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from atelier.business.order_status import OrderStatus
from atelier.observability.logging import get_logger
from atelier.observability.metrics import notifications_total
from atelier.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerError,
    get_circuit_breaker,
)
from atelier.settings import settings


logger = get_logger(__name__)

STATUS_COLORS: Dict[OrderStatus, int] = {
    OrderStatus.ORDER_READY: 0xFFA500,
    OrderStatus.CUSTOMER_CONFIRMED: 0x00FF00,
    OrderStatus.READY_TO_SHIP: 0x0099FF,
    OrderStatus.ON_HOLD: 0xFFD700,
    OrderStatus.SHIPPED: 0x6A5ACD,
    OrderStatus.FULFILLED: 0x2E8B57,
    OrderStatus.CANCELLED: 0xFF0000,
}
DEFAULT_COLOR = 0x808080


def _display(status: OrderStatus) -> str:
    return status.value.replace("_", " ").title()


def build_status_embed(
    order_id: int,
    previous_status: OrderStatus,
    new_status: OrderStatus,
    actor: Optional[str] = None,
    order_name: Optional[str] = None,
    customer_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Minimal status-change embed."""
    fields = [
        {"name": "Order", "value": f"**{order_name or order_id}**", "inline": True},
        {"name": "Customer", "value": customer_name or "N/A", "inline": True},
        {
            "name": "Status Change",
            "value": f"`{_display(previous_status)}` → `{_display(new_status)}`",
            "inline": False,
        },
    ]
    if actor:
        fields.append({"name": "Updated By", "value": actor, "inline": False})

    return {
        "title": "📦 Order Status Updated",
        "color": STATUS_COLORS.get(new_status, DEFAULT_COLOR),
        "fields": fields,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "footer": {"text": f"Order ID: {order_id}"},
    }


class DiscordNotifier:
    """Best-effort notification sink posting embeds to a Discord webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.DISCORD_WEBHOOK_URL
        self._client = http_client or httpx.AsyncClient(timeout=settings.DISCORD_TIMEOUT_SECONDS)
        self._breaker = get_circuit_breaker(
            "discord",
            CircuitBreakerConfig(failure_threshold=3, recovery_timeout=300.0,
                                 expected_exception=httpx.HTTPError),
        )
        self._pending: Set[asyncio.Task] = set()

    def notify(
        self,
        order_id: int,
        previous_status: OrderStatus,
        new_status: OrderStatus,
        actor: Optional[str] = None,
        *,
        order_name: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> None:
        """Schedule a status-change embed without waiting for delivery."""
        if not self.webhook_url:
            notifications_total.labels(outcome="skipped").inc()
            return

        embed = build_status_embed(
            order_id, previous_status, new_status, actor, order_name, customer_name
        )
        task = asyncio.get_running_loop().create_task(self._post(order_id, embed))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, order_id: int, embed: Dict[str, Any]) -> None:
        try:
            async with self._breaker:
                response = await self._client.post(self.webhook_url, json={"embeds": [embed]})
                response.raise_for_status()
            notifications_total.labels(outcome="sent").inc()
        except CircuitBreakerError:
            notifications_total.labels(outcome="skipped").inc()
            logger.warning("Discord circuit open, notification dropped", order_id=order_id)
        except httpx.HTTPError as e:
            notifications_total.labels(outcome="failed").inc()
            logger.error("Discord notification failed", order_id=order_id, error=str(e))

    async def drain(self) -> None:
        """Wait for every scheduled notification to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._client.aclose()
