# ==== ORDER TRANSITION SERVICE ==== #

"""
Read, decide, write, notify: the one path through which every job changes
an order's labels.

The decision is first taken on the caller's snapshot. Only when that snapshot
says something would change is the order re-read, re-decoded and re-decided
right before the write, which keeps the lost-update window between concurrent
jobs as small as the order store allows. There is no lock and no version
check; the last writer wins.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from atelier.business.labels import decode, encode
from atelier.business.order_status import OrderStatus
from atelier.business.state_machine import OrderEvent, OrderStateMachine, Transition
from atelier.errors import TransitionRejected
from atelier.observability.logging import get_logger
from atelier.observability.metrics import order_transitions_total
from atelier.observability.tracing import get_tracer
from atelier.schemas.orders import Order
from atelier.services.ports import NotificationSink, OrderStore


tracer = get_tracer(__name__)
logger = get_logger(__name__)


@dataclass
class TransitionOutcome:
    """What happened to one order for one event."""

    order_id: int
    order_name: str
    event: OrderEvent
    applied: bool
    previous_status: OrderStatus
    new_status: OrderStatus
    notified: bool = False
    labels: list[str] = field(default_factory=list)


class OrderTransitionService:
    """
    Apply state machine events to orders held in the order store.

    Args:
        store: Order store adapter
        notifier: Notification sink for status-change alerts
        machine: State machine with the configured escalation thresholds
        default_actor: Actor reported in notifications when none is given
    """

    def __init__(
        self,
        store: OrderStore,
        notifier: NotificationSink,
        machine: Optional[OrderStateMachine] = None,
        default_actor: str = "system",
    ):
        self.store = store
        self.notifier = notifier
        self.machine = machine or OrderStateMachine()
        self.default_actor = default_actor

    def evaluate(
        self,
        order: Order,
        event: OrderEvent,
        *,
        today: date,
        carrier_status: Optional[str] = None,
        tracking_token: Optional[str] = None,
    ) -> Transition:
        """Decide on a snapshot without touching the store.

        Raises:
            TransitionRejected: If the event is not legal for the snapshot
        """
        return self.machine.apply(
            decode(order.tags),
            event,
            today=today,
            carrier_status=carrier_status,
            tracking_token=tracking_token,
        )

    async def apply(
        self,
        order: Order,
        event: OrderEvent,
        *,
        today: date,
        carrier_status: Optional[str] = None,
        tracking_token: Optional[str] = None,
        actor: Optional[str] = None,
        reread: bool = True,
    ) -> TransitionOutcome:
        """
        Apply an event to an order and persist the result.

        Args:
            order: Snapshot of the order as seen by the caller
            event: State machine event
            today: Business-local date
            carrier_status: Carrier status text for carrier-driven events
            tracking_token: Tracking token for ``MARK_READY_TO_SHIP``
            actor: Who triggered the event, shown in notifications
            reread: Re-fetch the order before writing

        Returns:
            TransitionOutcome: Applied or unchanged outcome

        Raises:
            TransitionRejected: If a guard fails on the snapshot or the fresh read
            OrderNotFound: If the order vanished
            TransientAdapterError: On order store failures
        """
        with tracer.start_as_current_span("order_transition") as span:
            span.set_attribute("order_id", order.id)
            span.set_attribute("event", event.value)

            kwargs = dict(today=today, carrier_status=carrier_status, tracking_token=tracking_token)

            try:
                transition = self.evaluate(order, event, **kwargs)
                if transition.changed and reread:
                    order = await self.store.get_order(order.id)
                    transition = self.evaluate(order, event, **kwargs)
            except TransitionRejected:
                order_transitions_total.labels(event=event.value, outcome="rejected").inc()
                raise

            if not transition.changed:
                order_transitions_total.labels(event=event.value, outcome="unchanged").inc()
                span.set_attribute("changed", False)
                return TransitionOutcome(
                    order_id=order.id,
                    order_name=order.name,
                    event=event,
                    applied=False,
                    previous_status=transition.previous_status,
                    new_status=transition.new_status,
                )

            labels = encode(transition.state)
            try:
                await self.store.update_labels(order.id, labels)
            except Exception:
                order_transitions_total.labels(event=event.value, outcome="failed").inc()
                raise

            order_transitions_total.labels(event=event.value, outcome="applied").inc()
            span.set_attribute("changed", True)
            span.set_attribute("new_status", transition.new_status.value)

            notified = transition.notify and transition.previous_status != transition.new_status
            if notified:
                self.notifier.notify(
                    order.id,
                    transition.previous_status,
                    transition.new_status,
                    actor or self.default_actor,
                    order_name=order.name,
                    customer_name=order.customer_name,
                )

            logger.info(
                "Order transition applied",
                order_id=order.id,
                order_name=order.name,
                event=event.value,
                previous_status=transition.previous_status.value,
                new_status=transition.new_status.value,
                notified=notified,
            )

            return TransitionOutcome(
                order_id=order.id,
                order_name=order.name,
                event=event,
                applied=True,
                previous_status=transition.previous_status,
                new_status=transition.new_status,
                notified=notified,
                labels=labels,
            )

    async def apply_to_id(self, order_id: int, event: OrderEvent, **kwargs) -> TransitionOutcome:
        """Fetch an order by id and apply an event to the fresh read."""
        order = await self.store.get_order(order_id)
        return await self.apply(order, event, reread=False, **kwargs)
