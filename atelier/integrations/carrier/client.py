# ==== MYLERZ CARRIER ADAPTER ==== #

"""
Mylerz merchant API adapter for Atelier fulfillment.

The package list is partitioned into result tabs that each paginate on their
own; ``fetch_parcels`` walks every page of every tab and unions the rows.
The bearer token is cached until its ``expires_in`` elapses and refreshed
once when a request comes back 401.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from atelier.errors import AdapterRequestError, CarrierAuthenticationError, TransientAdapterError
from atelier.observability.logging import get_logger
from atelier.observability.metrics import carrier_parcels_fetched_total
from atelier.observability.tracing import get_tracer
from atelier.resilience.retry_policies import SessionExpired, reauthenticating_retry
from atelier.schemas.carrier import CarrierParcel
from atelier.settings import settings


# ==== MODULE INITIALIZATION ==== #


tracer = get_tracer(__name__)
logger = get_logger(__name__)

SERVICE = "carrier"
PACKAGES_PATH = "/api/package/GetPackagesList"
TOKEN_PATH = "/token"

# Refresh a little before the advertised expiry.
TOKEN_EXPIRY_SKEW_SECONDS = 60
MAX_PAGES_PER_TAB = 100


def format_carrier_datetime(value: datetime) -> str:
    """Render a UTC timestamp the way the package list filter expects it."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


# ==== CARRIER CLIENT ==== #


class MylerzClient:
    """Parcel-status feed with a minimal bearer-token cache."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        merchant_id: Optional[int] = None,
        member_id: Optional[int] = None,
        page_size: Optional[int] = None,
        tabs: Optional[List[int]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the carrier adapter.

        Args:
            api_url: Carrier API base URL, defaults to settings
            username: Merchant account username
            password: Merchant account password
            merchant_id: Merchant id used in package list filters
            member_id: Member id used in package list filters
            page_size: Rows per package list page
            tabs: Result partitions to poll
            http_client: Preconfigured client, mainly for tests
        """
        self.api_url = (api_url or settings.CARRIER_API_URL).rstrip("/")
        self.username = username or settings.CARRIER_USERNAME
        self.password = password or settings.CARRIER_PASSWORD
        self.merchant_id = merchant_id or settings.CARRIER_MERCHANT_ID
        self.member_id = member_id or settings.CARRIER_MEMBER_ID
        self.page_size = page_size or settings.CARRIER_PAGE_SIZE
        self.tabs = list(tabs or settings.CARRIER_TABS)

        self._client = http_client or httpx.AsyncClient(
            base_url=self.api_url,
            headers={"Accept": "application/json", "Culture": "en-Mylerz"},
            timeout=settings.CARRIER_TIMEOUT_SECONDS,
        )
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._auth_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._client.aclose()


    # ==== AUTHENTICATION ==== #


    def _token_valid(self) -> bool:
        return self._token is not None and time.monotonic() < self._token_expires_at

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    async def authenticate(self) -> str:
        """
        Return a cached token or obtain a new one with the password grant.

        Returns:
            str: Bearer token

        Raises:
            CarrierAuthenticationError: If the carrier refuses the credentials
            TransientAdapterError: If the token endpoint is unreachable
        """
        async with self._auth_lock:
            if self._token_valid():
                return self._token

            if not self.username or not self.password:
                raise CarrierAuthenticationError("Carrier credentials are not configured")

            with tracer.start_as_current_span("carrier_authenticate"):
                try:
                    response = await self._client.post(
                        TOKEN_PATH,
                        data={
                            "grant_type": "password",
                            "username": self.username,
                            "password": self.password,
                        },
                    )
                except httpx.TransportError as e:
                    raise TransientAdapterError(SERVICE, f"token request failed: {e}") from e

                if response.status_code >= 500:
                    raise TransientAdapterError(
                        SERVICE, f"token endpoint returned {response.status_code}",
                        status_code=response.status_code,
                    )

                body = response.json() if response.content else {}
                token = body.get("access_token") if response.is_success else None
                if not token:
                    raise CarrierAuthenticationError(
                        f"Carrier authentication failed with status {response.status_code}"
                    )

                expires_in = int(body.get("expires_in") or 0)
                self._token = token
                self._token_expires_at = time.monotonic() + max(
                    expires_in - TOKEN_EXPIRY_SKEW_SECONDS, 0
                )
                logger.info("Carrier session token refreshed", expires_in=expires_in)
                return token

    async def _reauthenticate(self) -> None:
        self.invalidate_token()
        await self.authenticate()


    # ==== PACKAGE LIST ==== #


    def _packages_payload(
        self, date_from: datetime, date_to: datetime, tab: int, page: int, page_size: int
    ) -> Dict[str, Any]:
        return {
            "FilterModel": {
                "PageFilter": {"PageIndex": page, "PageSize": page_size},
                "SearchKeyword": "",
            },
            "From": format_carrier_datetime(date_from),
            "To": format_carrier_datetime(date_to),
            "SelectedTab": tab,
            "MerchantIds": [self.merchant_id] if self.merchant_id is not None else [],
            "WarehouseIds": [],
            "SubscriberIds": [],
            "HubId": [],
            "HubTypeId": 0,
            "PhaseId": [],
            "MylerIds": [],
            "TransferBy": [],
            "ServiceTypeId": [],
            "ServiceCategoryId": [],
            "PaymentTypeId": [],
            "StatusId": [],
            "PackageServiceId": [],
            "AttemptsNumber": None,
            "MemberId": self.member_id,
            "Barcodes": [],
            "PreferedTimeSlot": 0,
            "AvailableTimeslotId": 0,
            "DateTypeId": 3,
            "SearchOptionId": 1,
            "MemberCategoryID": 2,
        }

    async def _post_packages(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        token = await self.authenticate()
        try:
            response = await self._client.post(
                PACKAGES_PATH,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TransportError as e:
            raise TransientAdapterError(SERVICE, f"package list request failed: {e}") from e

        if response.status_code == 401:
            raise SessionExpired()
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientAdapterError(
                SERVICE, f"package list returned {response.status_code}",
                status_code=response.status_code,
            )
        if response.is_client_error:
            raise AdapterRequestError(
                SERVICE, f"package list returned {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    async def _list_page(
        self, date_from: datetime, date_to: datetime, tab: int, page: int, page_size: int
    ) -> Tuple[List[CarrierParcel], int]:
        """
        Fetch one page of one result tab.

        Returns:
            Tuple[List[CarrierParcel], int]: Parcels with a barcode and the raw row count

        Raises:
            CarrierAuthenticationError: If the token is rejected again after a refresh
            TransientAdapterError: On network errors, 429 and 5xx
            AdapterRequestError: On any other 4xx
        """
        payload = self._packages_payload(date_from, date_to, tab, page, page_size)

        with tracer.start_as_current_span("carrier_list_parcels") as span:
            span.set_attribute("tab", tab)
            span.set_attribute("page", page)
            try:
                async for attempt in reauthenticating_retry(
                    SERVICE, "list_parcels", self._reauthenticate
                ):
                    with attempt:
                        body = await self._post_packages(payload)
            except SessionExpired as e:
                raise CarrierAuthenticationError(
                    "Carrier rejected a freshly issued session token"
                ) from e

            rows = ((body or {}).get("Value") or {}).get("Result") or []
            parcels = [CarrierParcel.model_validate(row) for row in rows if row.get("Barcode")]
            span.set_attribute("rows", len(rows))
            span.set_attribute("parcels", len(parcels))
            return parcels, len(rows)

    async def list_parcels(
        self, date_from: datetime, date_to: datetime, tab: int, page: int, page_size: int
    ) -> List[CarrierParcel]:
        """Fetch one page of one result tab, dropping rows without a barcode."""
        parcels, _ = await self._list_page(date_from, date_to, tab, page, page_size)
        return parcels

    async def _fetch_tab(self, date_from: datetime, date_to: datetime, tab: int) -> List[CarrierParcel]:
        parcels: List[CarrierParcel] = []
        for page in range(1, MAX_PAGES_PER_TAB + 1):
            batch, row_count = await self._list_page(date_from, date_to, tab, page, self.page_size)
            parcels.extend(batch)
            # Page fullness is judged on raw rows, not on parcels kept
            if row_count < self.page_size:
                break
        else:
            logger.warning("Carrier tab page limit reached", tab=tab, pages=MAX_PAGES_PER_TAB)

        carrier_parcels_fetched_total.labels(tab=str(tab)).inc(len(parcels))
        return parcels

    async def fetch_parcels(self, date_from: datetime, date_to: datetime) -> List[CarrierParcel]:
        """
        Fetch every page of every configured tab concurrently and union them.

        Args:
            date_from: Window start
            date_to: Window end

        Returns:
            List[CarrierParcel]: Parcels from all tabs, tab order preserved
        """
        with tracer.start_as_current_span("carrier_fetch_parcels") as span:
            span.set_attribute("tabs", len(self.tabs))
            per_tab = await asyncio.gather(
                *(self._fetch_tab(date_from, date_to, tab) for tab in self.tabs)
            )
            parcels = [parcel for tab_parcels in per_tab for parcel in tab_parcels]
            span.set_attribute("parcels", len(parcels))
            logger.info(
                "Fetched carrier parcels",
                tabs=self.tabs,
                per_tab=[len(tab_parcels) for tab_parcels in per_tab],
                total=len(parcels),
            )
            return parcels
