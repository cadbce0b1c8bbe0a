# ==== SHOPIFY ORDER STORE ADAPTER ==== #

"""
Shopify Admin REST adapter for Atelier fulfillment.

Shopify is the only persistence boundary of the fulfillment core: orders are
read from it and their tag string is the single field written back. Network
failures, throttling and 5xx responses surface as ``TransientAdapterError``
so the calling job can skip the order until the next cycle; other 4xx
responses surface as ``AdapterRequestError``.
"""

from typing import Any, Dict, Optional, Sequence

import httpx

from atelier.business.labels import decode
from atelier.business.order_status import OrderStatus
from atelier.business.phones import phone_matches, phone_variants
from atelier.errors import AdapterRequestError, OrderNotFound, TransientAdapterError
from atelier.observability.logging import get_logger
from atelier.observability.tracing import get_tracer
from atelier.schemas.orders import Order, OrderFilter
from atelier.settings import settings


# ==== MODULE INITIALIZATION ==== #


tracer = get_tracer(__name__)
logger = get_logger(__name__)

SERVICE = "shopify"


# ==== SHOPIFY CLIENT ==== #


class ShopifyClient:
    """
    Order store backed by the Shopify Admin REST API.

    Listing follows cursor pagination through the ``Link`` response header.
    Status filtering is done on decoded labels because Shopify's ``tag``
    query parameter is only a hint.
    """

    def __init__(
        self,
        shop_url: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        page_size: Optional[int] = None,
        phone_lookup_limit: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Shopify adapter.

        Args:
            shop_url: Shop base URL, defaults to settings
            access_token: Admin API access token, defaults to settings
            api_version: Admin API version, defaults to settings
            page_size: Orders per listing page (Shopify caps this at 250)
            phone_lookup_limit: Recent orders scanned by phone lookups
            http_client: Preconfigured client, mainly for tests
        """
        shop_url = (shop_url or settings.SHOPIFY_SHOP_URL).rstrip("/")
        api_version = api_version or settings.SHOPIFY_API_VERSION
        self.base_url = f"{shop_url}/admin/api/{api_version}"
        self.page_size = min(page_size or settings.SHOPIFY_PAGE_SIZE, 250)
        self.phone_lookup_limit = phone_lookup_limit or settings.SHOPIFY_PHONE_LOOKUP_LIMIT

        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Shopify-Access-Token": access_token or settings.SHOPIFY_ACCESS_TOKEN or "",
                "Content-Type": "application/json",
            },
            timeout=settings.SHOPIFY_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


    # ==== TRANSPORT ==== #


    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Send a request and classify transport-level failures.

        Returns:
            httpx.Response: Any 2xx or 404 response

        Raises:
            TransientAdapterError: On network errors, 429 and 5xx
            AdapterRequestError: On any other 4xx
        """
        try:
            response = await self._client.request(method, url, params=params, json=json)
        except httpx.TransportError as e:
            raise TransientAdapterError(SERVICE, f"{method} {url} failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientAdapterError(
                SERVICE,
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        if response.is_client_error and response.status_code != 404:
            raise AdapterRequestError(
                SERVICE,
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response


    # ==== READS ==== #


    async def get_order(self, order_id: int) -> Order:
        """
        Fetch a single order.

        Raises:
            OrderNotFound: If Shopify no longer knows the order
        """
        with tracer.start_as_current_span("shopify_get_order") as span:
            span.set_attribute("order_id", order_id)
            response = await self._request("GET", f"/orders/{order_id}.json")
            if response.status_code == 404:
                raise OrderNotFound(str(order_id))
            return Order.model_validate(response.json()["order"])

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        """
        List orders page by page, keeping those whose decoded status matches.

        Args:
            order_filter: Status and creation-date bounds

        Returns:
            list[Order]: Matching orders, newest first as Shopify returns them
        """
        with tracer.start_as_current_span("shopify_list_orders") as span:
            params: Dict[str, Any] = {"status": "any", "limit": self.page_size}
            if order_filter.status and order_filter.status is not OrderStatus.PENDING:
                params["tag"] = order_filter.status.value
                span.set_attribute("status", order_filter.status.value)
            if order_filter.created_at_min:
                params["created_at_min"] = order_filter.created_at_min.isoformat()
            if order_filter.created_at_max:
                params["created_at_max"] = order_filter.created_at_max.isoformat()

            matched: list[Order] = []
            url: Optional[str] = "/orders.json"
            pages = 0

            while url:
                response = await self._request("GET", url, params=params)
                pages += 1
                for raw in response.json().get("orders", []):
                    order = Order.model_validate(raw)
                    if order_filter.status is None or decode(order.tags).status is order_filter.status:
                        matched.append(order)

                if order_filter.limit and len(matched) >= order_filter.limit:
                    matched = matched[:order_filter.limit]
                    break

                # The next-page URL already carries page_info and limit.
                next_link = response.links.get("next")
                url = next_link.get("url") if next_link else None
                params = None

            span.set_attribute("pages", pages)
            span.set_attribute("orders", len(matched))
            logger.debug(
                "Listed Shopify orders",
                status=order_filter.status.value if order_filter.status else None,
                pages=pages,
                orders=len(matched),
            )
            return matched

    async def find_order_by_name(self, name: str) -> Optional[Order]:
        """Resolve an order number such as ``#1042`` or ``1042``."""
        wanted = name.strip()
        if not wanted.startswith("#"):
            wanted = f"#{wanted}"

        with tracer.start_as_current_span("shopify_find_order_by_name") as span:
            span.set_attribute("order_name", wanted)
            response = await self._request(
                "GET", "/orders.json", params={"status": "any", "name": wanted}
            )
            for raw in response.json().get("orders", []):
                order = Order.model_validate(raw)
                if order.name == wanted:
                    return order
            return None

    async def list_orders_by_phone(self, phone: str) -> list[Order]:
        """
        Scan the most recent orders for a customer or shipping phone match.

        Args:
            phone: Phone number in any local or international spelling

        Returns:
            list[Order]: Matching orders, newest first
        """
        variants = phone_variants(phone)
        if not variants:
            return []

        with tracer.start_as_current_span("shopify_list_orders_by_phone") as span:
            response = await self._request(
                "GET",
                "/orders.json",
                params={
                    "status": "any",
                    "limit": self.phone_lookup_limit,
                    "order": "created_at desc",
                },
            )
            orders = [Order.model_validate(raw) for raw in response.json().get("orders", [])]
            matches = [
                order for order in orders
                if any(phone_matches(stored, variants) for stored in order.phones())
            ]
            span.set_attribute("scanned", len(orders))
            span.set_attribute("matched", len(matches))
            return matches


    # ==== WRITES ==== #


    async def update_labels(self, order_id: int, labels: Sequence[str]) -> None:
        """
        Overwrite the order's tag string.

        Raises:
            OrderNotFound: If the order vanished before the write
        """
        with tracer.start_as_current_span("shopify_update_labels") as span:
            span.set_attribute("order_id", order_id)
            span.set_attribute("label_count", len(labels))
            response = await self._request(
                "PUT",
                f"/orders/{order_id}.json",
                json={"order": {"id": order_id, "tags": ", ".join(labels)}},
            )
            if response.status_code == 404:
                raise OrderNotFound(str(order_id))
            logger.info("Updated order labels", order_id=order_id, labels=list(labels))
