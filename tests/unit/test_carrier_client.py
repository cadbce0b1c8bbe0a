"""Unit tests for the Mylerz carrier adapter."""

import json
from datetime import datetime, timezone

import httpx
import pytest
import respx

from atelier.errors import AdapterRequestError, CarrierAuthenticationError, TransientAdapterError
from atelier.integrations.carrier.client import MylerzClient, format_carrier_datetime


API = "https://carrier.test"
WINDOW = (
    datetime(2025, 1, 3, 20, 0, tzinfo=timezone.utc),
    datetime(2025, 1, 10, 20, 59, 59, tzinfo=timezone.utc),
)


def token_response(token="tok-1", expires_in=3600):
    return httpx.Response(200, json={"access_token": token, "token_type": "bearer", "expires_in": expires_in})


def packages_response(*rows):
    return httpx.Response(200, json={"IsErrorState": False, "Value": {"Result": list(rows), "Total": len(rows)}})


def row(barcode, status="In Transit", customer="Mona Adel", phone="01001234567"):
    return {"Barcode": barcode, "PackageENStatus": status, "CustomerName": customer, "PhoneNo": phone}


def build_client(**overrides):
    options = dict(
        api_url=API,
        username="merchant",
        password="secret",
        merchant_id=42,
        member_id=7,
        page_size=500,
        tabs=[1],
    )
    options.update(overrides)
    return MylerzClient(**options)


@pytest.mark.unit
class TestAuthentication:

    @respx.mock
    @pytest.mark.asyncio
    async def test_password_grant_and_cache(self):
        route = respx.post(f"{API}/token").mock(return_value=token_response())
        client = build_client()

        assert await client.authenticate() == "tok-1"
        assert await client.authenticate() == "tok-1"

        assert route.call_count == 1
        form = dict(httpx.QueryParams(route.calls.last.request.content.decode()))
        assert form == {"grant_type": "password", "username": "merchant", "password": "secret"}

    @respx.mock
    @pytest.mark.asyncio
    async def test_short_lived_token_is_refreshed(self):
        route = respx.post(f"{API}/token").mock(side_effect=[token_response("tok-1", 30), token_response("tok-2")])
        client = build_client()

        await client.authenticate()

        assert await client.authenticate() == "tok-2"
        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        respx.post(f"{API}/token").mock(
            return_value=httpx.Response(400, json={"error": "invalid_grant"})
        )

        with pytest.raises(CarrierAuthenticationError):
            await build_client().authenticate()

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        client = build_client()
        client.password = None

        with pytest.raises(CarrierAuthenticationError):
            await client.authenticate()

    @respx.mock
    @pytest.mark.asyncio
    async def test_token_endpoint_outage_is_transient(self):
        respx.post(f"{API}/token").mock(return_value=httpx.Response(502))

        with pytest.raises(TransientAdapterError):
            await build_client().authenticate()


@pytest.mark.unit
class TestPackageList:

    def test_datetime_format(self):
        assert format_carrier_datetime(WINDOW[0]) == "2025-01-03T20:00:00.000Z"

    @respx.mock
    @pytest.mark.asyncio
    async def test_fetch_parcels_walks_pages(self):
        respx.post(f"{API}/token").mock(return_value=token_response())
        route = respx.post(f"{API}/api/package/GetPackagesList").mock(side_effect=[
            packages_response(row("AB1"), row("AB2", "Delivered")),
            packages_response(row("AB3"), {"Barcode": None, "PackageENStatus": "Delivered"}),
            packages_response(row("AB4")),
        ])
        client = build_client(page_size=2)

        parcels = await client.fetch_parcels(*WINDOW)

        assert [parcel.tracking_token for parcel in parcels] == ["AB1", "AB2", "AB3", "AB4"]
        assert route.call_count == 3
        assert parcels[1].status_text == "Delivered"
        assert parcels[0].phone == "01001234567"

        first, second, third = (json.loads(call.request.content) for call in route.calls)
        assert first["FilterModel"]["PageFilter"] == {"PageIndex": 1, "PageSize": 2}
        assert second["FilterModel"]["PageFilter"]["PageIndex"] == 2
        assert third["FilterModel"]["PageFilter"]["PageIndex"] == 3
        assert first["From"] == "2025-01-03T20:00:00.000Z"
        assert first["To"] == "2025-01-10T20:59:59.000Z"
        assert first["MerchantIds"] == [42]
        assert first["MemberId"] == 7
        assert route.calls.last.request.headers["Authorization"] == "Bearer tok-1"

    @respx.mock
    @pytest.mark.asyncio
    async def test_rows_without_barcode_still_count_towards_a_full_page(self):
        respx.post(f"{API}/token").mock(return_value=token_response())
        route = respx.post(f"{API}/api/package/GetPackagesList").mock(side_effect=[
            packages_response(row("AB1"), {"Barcode": None, "PackageENStatus": "Cancelled"}),
            packages_response(row("AB2", "Delivered")),
        ])

        parcels = await build_client(page_size=2).fetch_parcels(*WINDOW)

        assert [parcel.tracking_token for parcel in parcels] == ["AB1", "AB2"]
        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_list_parcels_drops_rows_without_barcode(self):
        respx.post(f"{API}/token").mock(return_value=token_response())
        respx.post(f"{API}/api/package/GetPackagesList").mock(
            return_value=packages_response(row("AB1"), {"Barcode": "", "PackageENStatus": "Delivered"})
        )

        parcels = await build_client().list_parcels(*WINDOW, tab=1, page=1, page_size=2)

        assert [parcel.tracking_token for parcel in parcels] == ["AB1"]

    @respx.mock
    @pytest.mark.asyncio
    async def test_fetch_parcels_unions_every_tab(self):
        respx.post(f"{API}/token").mock(return_value=token_response())

        def by_tab(request):
            tab = json.loads(request.content)["SelectedTab"]
            return packages_response(row(f"T{tab}"))

        respx.post(f"{API}/api/package/GetPackagesList").mock(side_effect=by_tab)

        parcels = await build_client(tabs=[1, 2, 3]).fetch_parcels(*WINDOW)

        assert [parcel.tracking_token for parcel in parcels] == ["T1", "T2", "T3"]

    @respx.mock
    @pytest.mark.asyncio
    async def test_expired_session_is_refreshed_once(self):
        token_route = respx.post(f"{API}/token").mock(
            side_effect=[token_response("tok-1"), token_response("tok-2")]
        )
        packages_route = respx.post(f"{API}/api/package/GetPackagesList").mock(side_effect=[
            httpx.Response(401),
            packages_response(row("AB1")),
        ])

        parcels = await build_client().fetch_parcels(*WINDOW)

        assert [parcel.tracking_token for parcel in parcels] == ["AB1"]
        assert token_route.call_count == 2
        assert packages_route.calls.last.request.headers["Authorization"] == "Bearer tok-2"

    @respx.mock
    @pytest.mark.asyncio
    async def test_second_rejection_is_an_authentication_error(self):
        respx.post(f"{API}/token").mock(return_value=token_response())
        respx.post(f"{API}/api/package/GetPackagesList").mock(return_value=httpx.Response(401))

        with pytest.raises(CarrierAuthenticationError):
            await build_client().fetch_parcels(*WINDOW)

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        respx.post(f"{API}/token").mock(return_value=token_response())
        respx.post(f"{API}/api/package/GetPackagesList").mock(return_value=httpx.Response(503))

        with pytest.raises(TransientAdapterError):
            await build_client().fetch_parcels(*WINDOW)

    @respx.mock
    @pytest.mark.asyncio
    async def test_bad_request_is_an_adapter_request_error(self):
        respx.post(f"{API}/token").mock(return_value=token_response())
        respx.post(f"{API}/api/package/GetPackagesList").mock(return_value=httpx.Response(400))

        with pytest.raises(AdapterRequestError) as exc_info:
            await build_client().fetch_parcels(*WINDOW)

        assert exc_info.value.status_code == 400
