# ==== CARRIER RECONCILIATION JOB ==== #

"""
Carrier status reconciliation for shipped, ready-to-ship and cancelled orders.

One run authenticates with the carrier, fetches every parcel of the trailing
lookback window across all result tabs once, then runs three passes against
that snapshot:

    delivered  shipped orders whose parcel is delivered → fulfilled
    pickup     ready_to_ship orders whose parcel left pending pickup → shipped
    returns    cancelled orders whose parcel came back → flagged ``deleted``

Matching is exact on the ``shipping_barcode`` token. Shipped orders without a
token fall back to the legacy phone and first-name heuristic, reported as its
own ``delivered_legacy`` pass.
"""

import time
from datetime import date, datetime, time as dt_time, timedelta, timezone
from typing import Dict, Iterable, Optional

from atelier.business.clock import local_today
from atelier.business.labels import decode
from atelier.business.order_status import Flag, OrderStatus
from atelier.business.phones import local_phone, zero_prefixed_phone
from atelier.business.state_machine import (
    OrderEvent,
    is_delivered_status,
    is_picked_up_status,
    is_return_received_status,
)
from atelier.observability.logging import get_logger
from atelier.observability.metrics import job_duration_seconds, job_runs_total
from atelier.observability.tracing import get_tracer
from atelier.schemas.carrier import CarrierParcel
from atelier.schemas.jobs import JobReport, PassResult
from atelier.schemas.orders import Order, OrderFilter
from atelier.services.batch import process_orders
from atelier.services.order_transitions import OrderTransitionService
from atelier.services.ports import CarrierGateway, OrderStore
from atelier.settings import settings


tracer = get_tracer(__name__)
logger = get_logger(__name__)

JOB = "carrier_reconciliation"
ACTOR = "carrier-reconciliation"
LEGACY_ACTOR = "carrier-reconciliation (phone match)"


# ==== MATCHING ==== #


def index_by_token(parcels: Iterable[CarrierParcel]) -> Dict[str, CarrierParcel]:
    """Map tracking token to parcel, first tab wins on duplicates."""
    index: Dict[str, CarrierParcel] = {}
    for parcel in parcels:
        if parcel.tracking_token:
            index.setdefault(parcel.tracking_token, parcel)
    return index


def match_parcel_by_customer(order: Order, parcels: Iterable[CarrierParcel]) -> Optional[CarrierParcel]:
    """
    Legacy heuristic: same normalized phone and first name contained in the
    carrier's customer name. Can produce false positives.
    """
    first_name = order.first_name.strip().lower()
    phone = local_phone(order.customer.phone if order.customer else None)
    if not first_name or not phone:
        return None

    for parcel in parcels:
        if zero_prefixed_phone(parcel.phone) == phone and first_name in (parcel.customer_name or "").lower():
            return parcel
    return None


def reconciliation_window(today: date, lookback_days: int) -> tuple[datetime, datetime]:
    """Carrier query window: 20:00 UTC ``lookback_days`` ago to 20:59:59 UTC today."""
    start = datetime.combine(today - timedelta(days=lookback_days), dt_time(20, 0), tzinfo=timezone.utc)
    end = datetime.combine(today, dt_time(20, 59, 59), tzinfo=timezone.utc)
    return start, end


# ==== JOB ==== #


class CarrierReconciliationJob:
    """
    Reconcile local order status with the carrier's parcel feed.

    Args:
        store: Order store adapter
        carrier: Carrier gateway
        transitions: Shared transition service
        timezone: Business timezone used to compute "today"
        lookback_days: Days of parcel history fetched per run
        legacy_matching_enabled: Use the phone and name fallback for token-less orders
        max_concurrency: Orders processed concurrently within one pass
    """

    def __init__(
        self,
        store: OrderStore,
        carrier: CarrierGateway,
        transitions: OrderTransitionService,
        timezone: Optional[str] = None,
        lookback_days: Optional[int] = None,
        legacy_matching_enabled: Optional[bool] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.store = store
        self.carrier = carrier
        self.transitions = transitions
        self.timezone = timezone or settings.BUSINESS_TIMEZONE
        self.lookback_days = lookback_days if lookback_days is not None else settings.CARRIER_LOOKBACK_DAYS
        self.legacy_matching_enabled = (
            legacy_matching_enabled
            if legacy_matching_enabled is not None
            else settings.CARRIER_LEGACY_MATCHING_ENABLED
        )
        self.max_concurrency = max_concurrency or settings.JOB_MAX_CONCURRENCY

    async def run(self, today: Optional[date] = None) -> JobReport:
        """
        Run one reconciliation cycle.

        Args:
            today: Business-local date, defaults to the current date in the
                business timezone

        Returns:
            JobReport: Aggregate counts per pass and the number of parcels fetched

        Raises:
            CarrierAuthenticationError: If the carrier refuses the credentials
            TransientAdapterError: If the parcel feed or an order listing fails
        """
        today = today or local_today(self.timezone)
        started = time.perf_counter()

        with tracer.start_as_current_span("carrier_reconciliation_run") as span:
            span.set_attribute("today", today.isoformat())
            try:
                await self.carrier.authenticate()
                date_from, date_to = reconciliation_window(today, self.lookback_days)
                parcels = await self.carrier.fetch_parcels(date_from, date_to)
                by_token = index_by_token(parcels)
                span.set_attribute("parcels", len(parcels))

                passes = await self._delivered_passes(parcels, by_token, today)
                passes["pickup"] = await self._pickup_pass(by_token, today)
                passes["returns"] = await self._returns_pass(by_token, today)
            except Exception:
                job_runs_total.labels(job=JOB, outcome="aborted").inc()
                logger.exception("Carrier reconciliation aborted", today=today.isoformat())
                raise
            finally:
                job_duration_seconds.labels(job=JOB).observe(time.perf_counter() - started)

            report = JobReport.from_passes(JOB, today.isoformat(), passes, parcels_fetched=len(parcels))
            job_runs_total.labels(job=JOB, outcome="completed").inc()
            span.set_attribute("successful", report.successful)
            span.set_attribute("failed", report.failed)

        logger.info(
            "Carrier reconciliation completed",
            today=today.isoformat(),
            parcels=len(parcels),
            fulfilled=passes["delivered"].successful + passes["delivered_legacy"].successful,
            shipped=passes["pickup"].successful,
            returns=passes["returns"].successful,
            failed=report.failed,
        )
        return report

    # --► PASSES

    async def _delivered_passes(
        self, parcels: list[CarrierParcel], by_token: Dict[str, CarrierParcel], today: date
    ) -> Dict[str, PassResult]:
        shipped = await self.store.list_orders(OrderFilter(status=OrderStatus.SHIPPED))
        with_token = [order for order in shipped if decode(order.tags).tracking_token]
        without_token = [order for order in shipped if not decode(order.tags).tracking_token]

        async def deliver(order: Order) -> bool:
            parcel = by_token.get(decode(order.tags).tracking_token)
            if parcel is None or not is_delivered_status(parcel.status_text):
                return False
            outcome = await self.transitions.apply(
                order, OrderEvent.CARRIER_DELIVERED,
                today=today, carrier_status=parcel.status_text, actor=ACTOR,
            )
            return outcome.applied

        async def deliver_legacy(order: Order) -> bool:
            parcel = match_parcel_by_customer(order, parcels)
            if parcel is None or not is_delivered_status(parcel.status_text):
                return False
            logger.info(
                "Legacy phone match found delivered parcel",
                order_name=order.name,
                parcel=parcel.tracking_token,
                carrier_customer=parcel.customer_name,
            )
            outcome = await self.transitions.apply(
                order, OrderEvent.CARRIER_DELIVERED,
                today=today, carrier_status=parcel.status_text, actor=LEGACY_ACTOR,
            )
            return outcome.applied

        results = {
            "delivered": await process_orders(JOB, "delivered", with_token, deliver, self.max_concurrency),
        }
        if self.legacy_matching_enabled:
            results["delivered_legacy"] = await process_orders(
                JOB, "delivered_legacy", without_token, deliver_legacy, self.max_concurrency
            )
        else:
            results["delivered_legacy"] = PassResult(skipped=len(without_token))
        return results

    async def _pickup_pass(self, by_token: Dict[str, CarrierParcel], today: date) -> PassResult:
        ready = await self.store.list_orders(OrderFilter(status=OrderStatus.READY_TO_SHIP))
        candidates = [order for order in ready if decode(order.tags).tracking_token]

        async def pick_up(order: Order) -> bool:
            parcel = by_token.get(decode(order.tags).tracking_token)
            if parcel is None or not is_picked_up_status(parcel.status_text):
                return False
            outcome = await self.transitions.apply(
                order, OrderEvent.CARRIER_PICKED_UP,
                today=today, carrier_status=parcel.status_text, actor=ACTOR,
            )
            return outcome.applied

        return await process_orders(JOB, "pickup", candidates, pick_up, self.max_concurrency)

    async def _returns_pass(self, by_token: Dict[str, CarrierParcel], today: date) -> PassResult:
        cancelled = await self.store.list_orders(OrderFilter(status=OrderStatus.CANCELLED))
        candidates = []
        for order in cancelled:
            state = decode(order.tags)
            if state.tracking_token and not state.has_flag(Flag.DELETED):
                candidates.append(order)

        async def confirm_return(order: Order) -> bool:
            parcel = by_token.get(decode(order.tags).tracking_token)
            if parcel is None or not is_return_received_status(parcel.status_text):
                return False
            outcome = await self.transitions.apply(
                order, OrderEvent.CARRIER_RETURN_CONFIRMED,
                today=today, carrier_status=parcel.status_text, actor=ACTOR,
            )
            return outcome.applied

        return await process_orders(JOB, "returns", candidates, confirm_return, self.max_concurrency)
