# ==== CONFIRMATION CORRELATOR ==== #

"""
Outbound "your order is ready" requests and the correlation of customer
replies back to the order that is waiting for them.

Replies are matched in two steps. The reply's context id is looked up in the
pending-confirmation store first, which resolves exactly one order and
consumes the mapping. Without a usable context the most recent unconfirmed
``order_ready`` order of the sender's phone number is taken instead.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from atelier.business.clock import local_today
from atelier.business.labels import decode
from atelier.business.order_status import OrderStatus
from atelier.business.state_machine import OrderEvent
from atelier.errors import (
    AdapterRequestError,
    CorrelationMiss,
    TransientAdapterError,
    TransitionRejected,
)
from atelier.observability.logging import get_logger
from atelier.observability.metrics import correlation_total
from atelier.observability.tracing import get_tracer
from atelier.resilience.circuit_breaker import CircuitBreakerError
from atelier.schemas.orders import Order
from atelier.schemas.whatsapp import InboundReply
from atelier.services.order_transitions import OrderTransitionService, TransitionOutcome
from atelier.services.ports import MessagingGateway, OrderStore, PendingConfirmationStore
from atelier.settings import settings


tracer = get_tracer(__name__)
logger = get_logger(__name__)

ACTOR = "customer (whatsapp)"
# Replies match on the first characters of the button label.
BUTTON_PREFIX_LENGTH = 3


@dataclass
class CorrelationOutcome:
    """Result of handling one inbound reply."""

    reply_id: str
    matched: bool
    strategy: Optional[str] = None
    order_name: Optional[str] = None
    transition: Optional[TransitionOutcome] = None
    reason: Optional[str] = None


@dataclass
class ReadyOutcome:
    """Result of marking an order ready and asking the customer to confirm."""

    transition: TransitionOutcome
    message_id: Optional[str] = None


class ConfirmationCorrelator:
    """
    Send confirmation requests and apply ``CUSTOMER_CONFIRM`` on matching replies.

    Args:
        store: Order store adapter
        messaging: Messaging gateway used for the ``order_ready`` template
        pending: Pending-confirmation store
        transitions: Shared transition service
        button_text: Label of the confirmation quick-reply button
        template_name: Name of the ``order_ready`` template
        timezone: Business timezone used to compute "today"
    """

    def __init__(
        self,
        store: OrderStore,
        messaging: MessagingGateway,
        pending: PendingConfirmationStore,
        transitions: OrderTransitionService,
        button_text: Optional[str] = None,
        template_name: Optional[str] = None,
        timezone: Optional[str] = None,
    ):
        self.store = store
        self.messaging = messaging
        self.pending = pending
        self.transitions = transitions
        self.button_text = button_text or settings.CONFIRMATION_BUTTON_TEXT
        self.template_name = template_name or settings.WHATSAPP_ORDER_READY_TEMPLATE
        self.timezone = timezone or settings.BUSINESS_TIMEZONE

    # ==== OUTBOUND ==== #

    async def request_confirmation(self, order: Order) -> Optional[str]:
        """
        Send the ``order_ready`` template and remember which order it asks about.

        Args:
            order: Order to confirm

        Returns:
            Optional[str]: Provider message id, ``None`` when the order has no phone

        Raises:
            TransientAdapterError: If the messaging provider fails
        """
        phone = _contact_phone(order)
        if not phone:
            logger.warning("No phone number on order, confirmation not sent", order_name=order.name)
            return None

        with tracer.start_as_current_span("request_confirmation") as span:
            span.set_attribute("order_name", order.name)
            message_id = await self.messaging.send_template(phone, self.template_name, [order.name])
            await self.pending.remember(message_id, order.name)
            span.set_attribute("message_id", message_id)

        logger.info("Confirmation requested", order_name=order.name, message_id=message_id)
        return message_id

    async def request_ready(
        self, order: Order, *, today: Optional[date] = None, actor: Optional[str] = None
    ) -> ReadyOutcome:
        """
        Apply ``REQUEST_READY`` and, when the order moved, send the confirmation request.

        A messaging failure after the labels were written is logged and leaves
        ``message_id`` empty; the order stays ``order_ready`` either way.

        Raises:
            TransitionRejected: If the order is not pending
        """
        today = today or local_today(self.timezone)
        transition = await self.transitions.apply(order, OrderEvent.REQUEST_READY, today=today, actor=actor)
        if not transition.applied:
            return ReadyOutcome(transition=transition)

        try:
            message_id = await self.request_confirmation(order)
        except (TransientAdapterError, AdapterRequestError, CircuitBreakerError) as e:
            logger.error("Confirmation request failed", order_name=order.name, error=str(e))
            message_id = None
        return ReadyOutcome(transition=transition, message_id=message_id)

    # ==== INBOUND ==== #

    def is_confirmation(self, reply: InboundReply) -> bool:
        """Whether a reply is the confirmation quick-reply button."""
        if not reply.button_text:
            return False
        expected = self.button_text[:BUTTON_PREFIX_LENGTH].lower()
        return reply.button_text.strip()[:BUTTON_PREFIX_LENGTH].lower() == expected

    async def handle_reply(self, reply: InboundReply, *, today: Optional[date] = None) -> CorrelationOutcome:
        """
        Correlate one inbound reply and confirm the matched order.

        Args:
            reply: Normalized inbound reply
            today: Business-local date

        Returns:
            CorrelationOutcome: Matched, ignored or missed reply

        Raises:
            TransientAdapterError: On order store failures
        """
        if not self.is_confirmation(reply):
            correlation_total.labels(strategy="none", outcome="ignored").inc()
            return CorrelationOutcome(reply_id=reply.reply_id, matched=False, reason="not a confirmation")

        today = today or local_today(self.timezone)

        with tracer.start_as_current_span("handle_reply") as span:
            span.set_attribute("reply_id", reply.reply_id)

            try:
                order, strategy = await self._correlate(reply)
            except CorrelationMiss as e:
                correlation_total.labels(strategy="none", outcome="miss").inc()
                logger.warning(
                    "Reply dropped, no waiting order",
                    reply_id=reply.reply_id,
                    phone=e.phone,
                    context_id=e.context_id,
                )
                return CorrelationOutcome(reply_id=reply.reply_id, matched=False, reason=str(e))

            span.set_attribute("strategy", strategy)
            span.set_attribute("order_name", order.name)

            try:
                transition = await self.transitions.apply(
                    order, OrderEvent.CUSTOMER_CONFIRM, today=today, actor=ACTOR
                )
            except TransitionRejected as e:
                correlation_total.labels(strategy=strategy, outcome="rejected").inc()
                logger.info(
                    "Confirmation for order that is no longer waiting",
                    reply_id=reply.reply_id,
                    order_name=order.name,
                    status=e.status,
                    reason=e.reason,
                )
                return CorrelationOutcome(
                    reply_id=reply.reply_id,
                    matched=True,
                    strategy=strategy,
                    order_name=order.name,
                    reason=str(e),
                )

        correlation_total.labels(strategy=strategy, outcome="matched").inc()
        logger.info(
            "Reply correlated",
            reply_id=reply.reply_id,
            strategy=strategy,
            order_name=order.name,
            applied=transition.applied,
        )
        return CorrelationOutcome(
            reply_id=reply.reply_id,
            matched=True,
            strategy=strategy,
            order_name=order.name,
            transition=transition,
        )

    async def _correlate(self, reply: InboundReply) -> tuple[Order, str]:
        if reply.context_id:
            order_name = await self.pending.consume(reply.context_id)
            if order_name:
                order = await self.store.find_order_by_name(order_name)
                if order is not None:
                    return order, "context"
                logger.warning("Pending confirmation points at unknown order", order_name=order_name)

        order = await self._latest_waiting_order(reply.from_phone)
        if order is not None:
            return order, "phone"

        raise CorrelationMiss(reply.from_phone, reply.context_id)

    async def _latest_waiting_order(self, phone: str) -> Optional[Order]:
        candidates = []
        for order in await self.store.list_orders_by_phone(phone):
            state = decode(order.tags)
            if state.status is OrderStatus.ORDER_READY and not state.confirmed:
                candidates.append(order)
        if not candidates:
            return None
        return max(candidates, key=_recency)


def _contact_phone(order: Order) -> Optional[str]:
    if order.shipping_address is not None and order.shipping_address.phone:
        return order.shipping_address.phone
    phones = order.phones()
    return phones[0] if phones else None


def _recency(order: Order):
    return (order.created_at is not None, order.created_at or 0, order.id)
