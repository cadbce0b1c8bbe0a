# ==== ESCALATION SCHEDULER ==== #

"""
Time-based escalation of unanswered confirmation requests.

Each run has two phases. The hold phase moves ``order_ready`` orders whose
``order_ready_date`` is at least the hold threshold old to ``on_hold``; the
cancel phase moves ``on_hold`` orders whose ``moved_to_on_hold`` is at least
the cancel threshold old to ``cancelled``. Confirmed orders, missing or
malformed stamps and orders already in the target status are skipped.
"""

import time
from datetime import date
from typing import Optional

from atelier.business.clock import local_today
from atelier.business.order_status import OrderStatus
from atelier.business.state_machine import OrderEvent
from atelier.observability.logging import get_logger
from atelier.observability.metrics import job_duration_seconds, job_runs_total
from atelier.observability.tracing import get_tracer
from atelier.schemas.jobs import JobReport, PassResult
from atelier.schemas.orders import Order, OrderFilter
from atelier.services.batch import process_orders
from atelier.services.order_transitions import OrderTransitionService
from atelier.services.ports import OrderStore
from atelier.settings import settings


tracer = get_tracer(__name__)
logger = get_logger(__name__)

JOB = "escalation"
ACTOR = "escalation-scheduler"


class EscalationScheduler:
    """
    Escalate overdue orders through ``on_hold`` to ``cancelled``.

    Args:
        store: Order store adapter
        transitions: Shared transition service
        timezone: Business timezone used to compute "today"
        max_concurrency: Orders processed concurrently within one phase
    """

    def __init__(
        self,
        store: OrderStore,
        transitions: OrderTransitionService,
        timezone: Optional[str] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.store = store
        self.transitions = transitions
        self.timezone = timezone or settings.BUSINESS_TIMEZONE
        self.max_concurrency = max_concurrency or settings.JOB_MAX_CONCURRENCY

    async def run(self, today: Optional[date] = None) -> JobReport:
        """
        Run the hold phase, then the cancel phase.

        Args:
            today: Business-local date, defaults to the current date in the
                business timezone

        Returns:
            JobReport: Aggregate counts with a ``hold`` and a ``cancel`` pass

        Raises:
            TransientAdapterError: If the order store cannot list orders
        """
        today = today or local_today(self.timezone)
        started = time.perf_counter()

        with tracer.start_as_current_span("escalation_run") as span:
            span.set_attribute("today", today.isoformat())
            try:
                passes = {
                    "hold": await self._run_phase(
                        "hold", OrderStatus.ORDER_READY, OrderEvent.ESCALATE_TO_HOLD, today
                    ),
                    "cancel": await self._run_phase(
                        "cancel", OrderStatus.ON_HOLD, OrderEvent.ESCALATE_TO_CANCEL, today
                    ),
                }
            except Exception:
                job_runs_total.labels(job=JOB, outcome="aborted").inc()
                logger.exception("Escalation run aborted", today=today.isoformat())
                raise
            finally:
                job_duration_seconds.labels(job=JOB).observe(time.perf_counter() - started)

            report = JobReport.from_passes(JOB, today.isoformat(), passes)
            job_runs_total.labels(job=JOB, outcome="completed").inc()
            span.set_attribute("successful", report.successful)
            span.set_attribute("failed", report.failed)

        logger.info(
            "Escalation run completed",
            today=today.isoformat(),
            moved_to_on_hold=passes["hold"].successful,
            cancelled=passes["cancel"].successful,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    async def _run_phase(
        self, pass_name: str, status: OrderStatus, event: OrderEvent, today: date
    ) -> PassResult:
        orders = await self.store.list_orders(OrderFilter(status=status))
        logger.info("Escalation phase started", pass_name=pass_name, candidates=len(orders))

        async def escalate(order: Order) -> bool:
            outcome = await self.transitions.apply(order, event, today=today, actor=ACTOR)
            return outcome.applied

        return await process_orders(JOB, pass_name, orders, escalate, self.max_concurrency)
