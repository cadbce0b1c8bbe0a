"""In-memory doubles for the adapter ports."""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from atelier.business.labels import decode
from atelier.business.phones import phone_matches, phone_variants
from atelier.errors import CarrierAuthenticationError, OrderNotFound
from atelier.schemas.carrier import CarrierParcel
from atelier.schemas.orders import Customer, Order, OrderFilter, ShippingAddress


def make_order(
    order_id: int,
    tags: str | Sequence[str] = "",
    *,
    name: Optional[str] = None,
    first_name: str = "Mona",
    last_name: str = "Adel",
    phone: Optional[str] = "+201001234567",
    created_at: Optional[datetime] = None,
) -> Order:
    """Build an order the way the Shopify adapter would return it."""
    if not isinstance(tags, str):
        tags = ", ".join(tags)
    return Order(
        id=order_id,
        name=name or f"#{order_id}",
        created_at=created_at or datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc),
        tags=tags,
        customer=Customer(id=order_id * 10, first_name=first_name, last_name=last_name, phone=phone),
        shipping_address=ShippingAddress(name=f"{first_name} {last_name}", phone=phone, city="Cairo"),
    )


def label_set(order: Order) -> set[str]:
    return {label.strip() for label in order.tags.split(",") if label.strip()}


class InMemoryOrderStore:
    """Order store keeping orders in a dict and recording every write."""

    def __init__(self, orders: Sequence[Order] = ()):
        self.orders: Dict[int, Order] = {order.id: order for order in orders}
        self.writes: List[tuple[int, list[str]]] = []
        self.fail_writes_for: set[int] = set()
        self.list_error: Optional[Exception] = None
        self.phone_lookup_error: Optional[Exception] = None

    def add(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id: int) -> Order:
        if order_id not in self.orders:
            raise OrderNotFound(str(order_id))
        return self.orders[order_id].model_copy()

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        if self.list_error is not None:
            raise self.list_error
        matches = [
            order.model_copy()
            for order in self.orders.values()
            if order_filter.status is None or decode(order.tags).status is order_filter.status
        ]
        if order_filter.limit is not None:
            matches = matches[:order_filter.limit]
        return matches

    async def update_labels(self, order_id: int, labels: Sequence[str]) -> None:
        if order_id in self.fail_writes_for:
            raise RuntimeError(f"write refused for order {order_id}")
        if order_id not in self.orders:
            raise OrderNotFound(str(order_id))
        self.writes.append((order_id, list(labels)))
        self.orders[order_id] = self.orders[order_id].model_copy(update={"tags": ", ".join(labels)})

    async def find_order_by_name(self, name: str) -> Optional[Order]:
        wanted = name if name.startswith("#") else f"#{name}"
        for order in self.orders.values():
            if order.name == wanted:
                return order.model_copy()
        return None

    async def list_orders_by_phone(self, phone: str) -> list[Order]:
        if self.phone_lookup_error is not None:
            raise self.phone_lookup_error
        variants = phone_variants(phone)
        matches = [
            order.model_copy()
            for order in self.orders.values()
            if any(phone_matches(stored, variants) for stored in order.phones())
        ]
        return sorted(matches, key=lambda order: order.created_at, reverse=True)


class FakeCarrier:
    """Carrier gateway serving a fixed parcel list."""

    def __init__(self, parcels: Sequence[CarrierParcel] = (), auth_error: bool = False):
        self.parcels = list(parcels)
        self.auth_error = auth_error
        self.authenticated = 0
        self.fetch_windows: List[tuple[datetime, datetime]] = []

    async def authenticate(self) -> str:
        self.authenticated += 1
        if self.auth_error:
            raise CarrierAuthenticationError("invalid credentials")
        return "token"

    async def list_parcels(self, date_from, date_to, tab, page, page_size) -> list[CarrierParcel]:
        return self.parcels if page == 1 else []

    async def fetch_parcels(self, date_from: datetime, date_to: datetime) -> list[CarrierParcel]:
        self.fetch_windows.append((date_from, date_to))
        return list(self.parcels)


class FakeMessaging:
    """Messaging gateway recording sent templates."""

    def __init__(self):
        self.sent: List[tuple[str, str, list[str]]] = []
        self.error: Optional[Exception] = None

    async def send_template(self, phone: str, template_name: str, params: Sequence[str]) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append((phone, template_name, list(params)))
        return f"wamid.{len(self.sent)}"


class RecordingNotifier:
    """Notification sink recording every call."""

    def __init__(self):
        self.calls: List[dict] = []

    def notify(self, order_id, previous_status, new_status, actor=None, *, order_name=None, customer_name=None):
        self.calls.append({
            "order_id": order_id,
            "previous_status": previous_status,
            "new_status": new_status,
            "actor": actor,
            "order_name": order_name,
        })


def parcel(token: str, status: str, *, customer_name: str = "", phone: str = "") -> CarrierParcel:
    return CarrierParcel(tracking_token=token, status_text=status, customer_name=customer_name, phone=phone)
