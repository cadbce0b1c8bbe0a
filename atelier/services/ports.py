"""Adapter boundaries consumed by the fulfillment jobs.

Jobs depend on these protocols only; concrete adapters live under
``atelier.integrations`` and in-memory doubles under ``tests``.
"""

from datetime import datetime
from typing import Optional, Protocol, Sequence

from atelier.business.order_status import OrderStatus
from atelier.schemas.carrier import CarrierParcel
from atelier.schemas.orders import Order, OrderFilter


class OrderStore(Protocol):
    """The only persistence boundary: orders and their label lists."""

    async def get_order(self, order_id: int) -> Order:
        """Fetch one order; raise ``OrderNotFound`` if it is gone."""

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        """List orders matching a decoded status and creation-date bounds."""

    async def update_labels(self, order_id: int, labels: Sequence[str]) -> None:
        """Overwrite an order's label list."""

    async def find_order_by_name(self, name: str) -> Optional[Order]:
        """Resolve a human-readable order number such as ``#1042``."""

    async def list_orders_by_phone(self, phone: str) -> list[Order]:
        """Recent orders whose customer or shipping phone matches."""


class CarrierGateway(Protocol):
    """Carrier parcel-status feed."""

    async def authenticate(self) -> str:
        """Return a valid session token, fetching one if the cache is empty or stale."""

    async def list_parcels(
        self, date_from: datetime, date_to: datetime, tab: int, page: int, page_size: int
    ) -> list[CarrierParcel]:
        """One page of one result partition."""

    async def fetch_parcels(self, date_from: datetime, date_to: datetime) -> list[CarrierParcel]:
        """Every page of every partition, unioned."""


class MessagingGateway(Protocol):
    """Outbound customer messaging."""

    async def send_template(self, phone: str, template_name: str, params: Sequence[str]) -> str:
        """Send a pre-approved template and return the provider message id."""


class NotificationSink(Protocol):
    """Fire-and-forget operator alerts; must never block or raise."""

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
        """Schedule a status-change alert."""


class PendingConfirmationStore(Protocol):
    """Message id to order number mapping, consumed once."""

    async def remember(self, message_id: str, order_name: str) -> None:
        """Record which order an outbound confirmation request belongs to."""

    async def consume(self, message_id: str) -> Optional[str]:
        """Return and forget the order number for a message id."""
