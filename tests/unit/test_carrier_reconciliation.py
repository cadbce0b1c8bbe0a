"""Unit tests for the carrier reconciliation job."""

from datetime import date, datetime, timezone

import pytest

from atelier.business.labels import decode
from atelier.business.order_status import OrderStatus
from atelier.errors import CarrierAuthenticationError
from atelier.services.carrier_reconciliation import (
    CarrierReconciliationJob,
    index_by_token,
    match_parcel_by_customer,
    reconciliation_window,
)
from tests.fakes import FakeCarrier, make_order, parcel


TODAY = date(2025, 1, 10)


def build_job(store, carrier, transitions, legacy=True):
    return CarrierReconciliationJob(
        store,
        carrier,
        transitions,
        timezone="Africa/Cairo",
        lookback_days=7,
        legacy_matching_enabled=legacy,
        max_concurrency=2,
    )


def status_of(store, order_id):
    return decode(store.orders[order_id].tags).status


@pytest.mark.unit
class TestMatching:

    def test_window_spans_lookback_in_utc(self):
        start, end = reconciliation_window(TODAY, 7)

        assert start == datetime(2025, 1, 3, 20, 0, 0, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 10, 20, 59, 59, tzinfo=timezone.utc)

    def test_first_parcel_wins_on_duplicate_token(self):
        index = index_by_token([parcel("X1", "Delivered"), parcel("X1", "In Transit")])

        assert index["X1"].status_text == "Delivered"

    def test_legacy_match_on_phone_and_first_name(self):
        order = make_order(1, "shipped", first_name="Mona", phone="+20 100 123 4567")
        parcels = [
            parcel("P1", "Delivered", customer_name="Sara Adel", phone="01001234567"),
            parcel("P2", "Delivered", customer_name="MONA ADEL", phone="1001234567"),
        ]

        assert match_parcel_by_customer(order, parcels).tracking_token == "P2"

    def test_legacy_match_requires_both_phone_and_name(self):
        order = make_order(1, "shipped", first_name="Mona", phone="01001234567")
        parcels = [
            parcel("P1", "Delivered", customer_name="Mona Adel", phone="01009999999"),
            parcel("P2", "Delivered", customer_name="Heba Adel", phone="01001234567"),
        ]

        assert match_parcel_by_customer(order, parcels) is None

    def test_legacy_match_needs_customer_data(self):
        order = make_order(1, "shipped", first_name="", phone="01001234567")

        assert match_parcel_by_customer(order, [parcel("P1", "Delivered", phone="01001234567")]) is None


@pytest.mark.unit
class TestCarrierReconciliationJob:
    """Test cases for a full reconciliation cycle."""

    @pytest.mark.asyncio
    async def test_delivered_matches_exact_token_only(self, store, transitions, notifier):
        store.add(make_order(1, "shipped, shipping_barcode:X, shipping_date:2025-01-08"))
        store.add(make_order(2, "shipped, shipping_barcode:Y, shipping_date:2025-01-08"))
        store.add(make_order(3, "shipped, shipping_barcode:XX, shipping_date:2025-01-08"))
        carrier = FakeCarrier([parcel("X", "Delivered"), parcel("Y", "In Transit")])

        report = await build_job(store, carrier, transitions).run(TODAY)

        assert status_of(store, 1) is OrderStatus.FULFILLED
        assert decode(store.orders[1].tags).keyed["fulfilled_at"] == "2025-01-10"
        assert status_of(store, 2) is OrderStatus.SHIPPED
        assert status_of(store, 3) is OrderStatus.SHIPPED
        assert report.passes["delivered"].successful == 1
        assert report.passes["delivered"].skipped == 2
        assert report.parcels_fetched == 2
        assert [call["order_id"] for call in notifier.calls] == [1]

    @pytest.mark.asyncio
    async def test_fetches_the_lookback_window(self, store, transitions):
        carrier = FakeCarrier()

        await build_job(store, carrier, transitions).run(TODAY)

        assert carrier.authenticated == 1
        assert carrier.fetch_windows == [reconciliation_window(TODAY, 7)]

    @pytest.mark.asyncio
    async def test_legacy_match_for_orders_without_token(self, store, transitions, notifier):
        store.add(make_order(1, "shipped, shipping_date:2025-01-08", first_name="Mona", phone="+201001234567"))
        carrier = FakeCarrier([parcel("P9", "Delivered", customer_name="mona adel", phone="1001234567")])

        report = await build_job(store, carrier, transitions).run(TODAY)

        assert status_of(store, 1) is OrderStatus.FULFILLED
        assert report.passes["delivered_legacy"].successful == 1
        assert notifier.calls[0]["actor"] == "carrier-reconciliation (phone match)"

    @pytest.mark.asyncio
    async def test_legacy_match_can_be_disabled(self, store, transitions):
        store.add(make_order(1, "shipped", first_name="Mona", phone="+201001234567"))
        carrier = FakeCarrier([parcel("P9", "Delivered", customer_name="mona adel", phone="1001234567")])

        report = await build_job(store, carrier, transitions, legacy=False).run(TODAY)

        assert status_of(store, 1) is OrderStatus.SHIPPED
        assert report.passes["delivered_legacy"].skipped == 1
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_pickup_pass(self, store, transitions):
        store.add(make_order(1, "ready_to_ship, shipping_barcode:AB1"))
        store.add(make_order(2, "ready_to_ship, shipping_barcode:AB2"))
        store.add(make_order(3, "ready_to_ship"))
        carrier = FakeCarrier([parcel("AB1", "In Transit"), parcel("AB2", "Pending Pickup")])

        report = await build_job(store, carrier, transitions).run(TODAY)

        state = decode(store.orders[1].tags)
        assert state.status is OrderStatus.SHIPPED
        assert state.keyed["shipping_date"] == "2025-01-10"
        assert status_of(store, 2) is OrderStatus.READY_TO_SHIP
        assert status_of(store, 3) is OrderStatus.READY_TO_SHIP
        assert report.passes["pickup"].successful == 1
        assert report.passes["pickup"].skipped == 1

    @pytest.mark.asyncio
    async def test_picked_up_order_is_not_delivered_in_same_cycle(self, store, transitions):
        store.add(make_order(1, "ready_to_ship, shipping_barcode:AB1"))
        carrier = FakeCarrier([parcel("AB1", "Delivered")])

        await build_job(store, carrier, transitions).run(TODAY)

        assert status_of(store, 1) is OrderStatus.SHIPPED

    @pytest.mark.asyncio
    async def test_returns_pass_flags_deleted_silently(self, store, transitions, notifier):
        store.add(make_order(1, "cancelled, shipping_barcode:R1, cancelled_date:2025-01-02"))
        store.add(make_order(2, "cancelled, deleted, shipping_barcode:R2"))
        carrier = FakeCarrier([
            parcel("R1", "Confirmed received by merchant"),
            parcel("R2", "Confirmed received by merchant"),
        ])

        report = await build_job(store, carrier, transitions).run(TODAY)

        state = decode(store.orders[1].tags)
        assert state.status is OrderStatus.CANCELLED
        assert state.has_flag("deleted")
        assert report.passes["returns"].successful == 1
        assert [order_id for order_id, _ in store.writes] == [1]
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_authentication_failure_aborts_cycle(self, store, transitions):
        store.add(make_order(1, "shipped, shipping_barcode:X"))
        carrier = FakeCarrier([parcel("X", "Delivered")], auth_error=True)

        with pytest.raises(CarrierAuthenticationError):
            await build_job(store, carrier, transitions).run(TODAY)

        assert carrier.fetch_windows == []
        assert store.writes == []
