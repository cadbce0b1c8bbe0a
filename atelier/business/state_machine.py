# ==== ORDER STATE MACHINE ==== #

"""
Pure transition function for the order fulfillment lifecycle.

    pending → order_ready → customer_confirmed → ready_to_ship → shipped → fulfilled
                   ↓
                on_hold → cancelled            (automatic escalation)
    any → cancelled                            (operator)

``OrderStateMachine.apply`` takes a decoded state and an event and returns a
``Transition`` with the next decoded state, or raises ``TransitionRejected``
when the event is not legal from the current state. It performs no I/O and
reads no clock; callers pass ``today``.
"""

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Optional

from atelier.business.clock import elapsed_days
from atelier.business.labels import DecodedOrderState, format_label_date
from atelier.business.order_status import NO_CONFIRMATION_REASON, Flag, LabelKey, OrderStatus
from atelier.errors import TransitionRejected


# ==== CARRIER STATUS TEXT ==== #

DELIVERED_STATUSES = frozenset({"delivered", "confirm delivered"})
PENDING_PICKUP_STATUSES = frozenset({"pending pickup", "waiting for pickup"})
RETURN_RECEIVED_STATUS = "confirmed received by merchant"


def _normalize_carrier_status(carrier_status: Optional[str]) -> str:
    return (carrier_status or "").strip().lower()


def is_delivered_status(carrier_status: Optional[str]) -> bool:
    return _normalize_carrier_status(carrier_status) in DELIVERED_STATUSES


def is_picked_up_status(carrier_status: Optional[str]) -> bool:
    normalized = _normalize_carrier_status(carrier_status)
    return bool(normalized) and normalized not in PENDING_PICKUP_STATUSES


def is_return_received_status(carrier_status: Optional[str]) -> bool:
    return _normalize_carrier_status(carrier_status) == RETURN_RECEIVED_STATUS


# ==== EVENTS AND RESULTS ==== #


class OrderEvent(str, Enum):
    """Events accepted by the state machine."""

    REQUEST_READY = "request_ready"
    CUSTOMER_CONFIRM = "customer_confirm"
    MARK_READY_TO_SHIP = "mark_ready_to_ship"
    CARRIER_PICKED_UP = "carrier_picked_up"
    CARRIER_DELIVERED = "carrier_delivered"
    ESCALATE_TO_HOLD = "escalate_to_hold"
    ESCALATE_TO_CANCEL = "escalate_to_cancel"
    MANUAL_CANCEL = "manual_cancel"
    CARRIER_RETURN_CONFIRMED = "carrier_return_confirmed"


@dataclass(frozen=True)
class Transition:
    """Outcome of applying one event to one decoded state."""

    event: OrderEvent
    previous: DecodedOrderState
    state: DecodedOrderState
    notify: bool

    @property
    def changed(self) -> bool:
        return self.state != self.previous

    @property
    def previous_status(self) -> OrderStatus:
        return self.previous.status

    @property
    def new_status(self) -> OrderStatus:
        return self.state.status


_ON_HOLD_KEYS = (LabelKey.MOVED_TO_ON_HOLD, LabelKey.NOTIFIED_ON_HOLD, LabelKey.ON_HOLD_REASON)


def _with_keys(state: DecodedOrderState, drop: tuple[str, ...] = (), **stamps: str) -> dict[str, str]:
    keyed = {key: value for key, value in state.keyed.items() if key not in drop}
    keyed.update(stamps)
    return keyed


def _without_flag(flags: tuple[str, ...], flag: str) -> tuple[str, ...]:
    return tuple(existing for existing in flags if existing.lower() != flag)


def _with_flag(flags: tuple[str, ...], flag: str) -> tuple[str, ...]:
    if any(existing.lower() == flag for existing in flags):
        return flags
    return flags + (flag,)


# ==== STATE MACHINE ==== #


class OrderStateMachine:
    """
    Decide the next decoded state for an order event.

    Args:
        hold_after_days: Days in ``order_ready`` before escalating to ``on_hold``
        cancel_after_days: Days in ``on_hold`` before escalating to ``cancelled``
    """

    def __init__(self, hold_after_days: int = 2, cancel_after_days: int = 2):
        self.hold_after_days = hold_after_days
        self.cancel_after_days = cancel_after_days

    def apply(
        self,
        state: DecodedOrderState,
        event: OrderEvent,
        *,
        today: date,
        carrier_status: Optional[str] = None,
        tracking_token: Optional[str] = None,
    ) -> Transition:
        """
        Apply an event to a decoded state.

        Args:
            state: Current decoded state
            event: Requested event
            today: Business-local date used for stamps and elapsed time
            carrier_status: Carrier status text for carrier-driven events
            tracking_token: Carrier token recorded by ``MARK_READY_TO_SHIP``

        Returns:
            Transition: Previous and next state with the notification decision

        Raises:
            TransitionRejected: If the event is illegal or a guard fails
        """
        handler = getattr(self, f"_on_{event.value}")
        next_state, notify = handler(
            state, today=today, carrier_status=carrier_status, tracking_token=tracking_token
        )
        return Transition(event=event, previous=state, state=next_state, notify=notify)

    # --► HELPERS

    @staticmethod
    def _reject(state: DecodedOrderState, event: OrderEvent, reason: str) -> TransitionRejected:
        return TransitionRejected(event.value, state.status.value, reason)

    def _require(self, state: DecodedOrderState, event: OrderEvent, *allowed: OrderStatus) -> None:
        if state.status not in allowed:
            allowed_names = ", ".join(status.value for status in allowed)
            raise self._reject(state, event, f"expected one of: {allowed_names}")

    @staticmethod
    def _advance(state: DecodedOrderState, status: OrderStatus, **changes) -> DecodedOrderState:
        # A status change settles any legacy double confirmation tag.
        return replace(
            state,
            status=status,
            confirmed=status is OrderStatus.CUSTOMER_CONFIRMED,
            **changes,
        )

    # --► HAPPY PATH

    def _on_request_ready(self, state, *, today, **_):
        self._require(state, OrderEvent.REQUEST_READY, OrderStatus.PENDING)
        stamp = format_label_date(today)
        return self._advance(
            state,
            OrderStatus.ORDER_READY,
            keyed=_with_keys(state, **{LabelKey.ORDER_READY_DATE: stamp}),
        ), True

    def _on_customer_confirm(self, state, **_):
        event = OrderEvent.CUSTOMER_CONFIRM
        if state.confirmed:
            raise self._reject(state, event, "already confirmed")
        self._require(state, event, OrderStatus.ORDER_READY, OrderStatus.ON_HOLD)
        return self._advance(
            state,
            OrderStatus.CUSTOMER_CONFIRMED,
            keyed=_with_keys(state, drop=_ON_HOLD_KEYS),
        ), True

    def _on_mark_ready_to_ship(self, state, *, tracking_token=None, **_):
        event = OrderEvent.MARK_READY_TO_SHIP
        legacy_confirmed = state.confirmed and state.status in (
            OrderStatus.ORDER_READY, OrderStatus.ON_HOLD
        )
        if not legacy_confirmed:
            self._require(state, event, OrderStatus.CUSTOMER_CONFIRMED)

        token = (tracking_token or "").strip() or state.tracking_token
        if not token:
            raise self._reject(state, event, "no carrier tracking token")

        return self._advance(
            state,
            OrderStatus.READY_TO_SHIP,
            keyed=_with_keys(state, drop=_ON_HOLD_KEYS, **{LabelKey.SHIPPING_BARCODE: token}),
        ), True

    def _on_carrier_picked_up(self, state, *, today, carrier_status=None, **_):
        event = OrderEvent.CARRIER_PICKED_UP
        self._require(state, event, OrderStatus.READY_TO_SHIP)
        if not is_picked_up_status(carrier_status):
            raise self._reject(state, event, f"carrier status '{carrier_status}' is still pending pickup")
        return self._advance(
            state,
            OrderStatus.SHIPPED,
            keyed=_with_keys(state, **{LabelKey.SHIPPING_DATE: format_label_date(today)}),
        ), True

    def _on_carrier_delivered(self, state, *, today, carrier_status=None, **_):
        event = OrderEvent.CARRIER_DELIVERED
        self._require(state, event, OrderStatus.SHIPPED)
        if not is_delivered_status(carrier_status):
            raise self._reject(state, event, f"carrier status '{carrier_status}' is not delivered")
        return self._advance(
            state,
            OrderStatus.FULFILLED,
            flags=_without_flag(state.flags, Flag.PRIORITY),
            keyed=_with_keys(state, **{LabelKey.FULFILLED_AT: format_label_date(today)}),
        ), True

    # --► ESCALATION

    def _elapsed_or_reject(self, state, event, key: str, threshold: int, today: date) -> None:
        if state.confirmed:
            raise self._reject(state, event, "customer already confirmed")
        stamp = state.date(key)
        if stamp is None:
            raise self._reject(state, event, f"missing or malformed {key}")
        elapsed = elapsed_days(stamp, today)
        if elapsed < threshold:
            raise self._reject(state, event, f"{elapsed} of {threshold} days elapsed")

    def _on_escalate_to_hold(self, state, *, today, **_):
        event = OrderEvent.ESCALATE_TO_HOLD
        self._require(state, event, OrderStatus.ORDER_READY)
        self._elapsed_or_reject(state, event, LabelKey.ORDER_READY_DATE, self.hold_after_days, today)

        stamp = format_label_date(today)
        notify = LabelKey.NOTIFIED_ON_HOLD not in state.keyed
        keyed = _with_keys(state, **{
            LabelKey.MOVED_TO_ON_HOLD: stamp,
            LabelKey.ON_HOLD_REASON: NO_CONFIRMATION_REASON,
        })
        keyed.setdefault(LabelKey.NOTIFIED_ON_HOLD, stamp)
        return self._advance(state, OrderStatus.ON_HOLD, keyed=keyed), notify

    def _on_escalate_to_cancel(self, state, *, today, **_):
        event = OrderEvent.ESCALATE_TO_CANCEL
        self._require(state, event, OrderStatus.ON_HOLD)
        self._elapsed_or_reject(state, event, LabelKey.MOVED_TO_ON_HOLD, self.cancel_after_days, today)

        stamp = format_label_date(today)
        notify = LabelKey.NOTIFIED_CANCELLED not in state.keyed
        keyed = _with_keys(state, **{LabelKey.CANCELLED_DATE: stamp})
        keyed.setdefault(LabelKey.NOTIFIED_CANCELLED, stamp)
        return self._advance(
            state,
            OrderStatus.CANCELLED,
            flags=_with_flag(state.flags, Flag.NO_REPLY_CANCELLED),
            keyed=keyed,
        ), notify

    # --► CANCELLATION

    def _on_manual_cancel(self, state, *, today, **_):
        if state.status is OrderStatus.CANCELLED:
            raise self._reject(state, OrderEvent.MANUAL_CANCEL, "already cancelled")
        return self._advance(
            state,
            OrderStatus.CANCELLED,
            flags=_without_flag(state.flags, Flag.PRIORITY),
            keyed=_with_keys(state, **{LabelKey.CANCELLED_DATE: format_label_date(today)}),
        ), True

    def _on_carrier_return_confirmed(self, state, *, carrier_status=None, **_):
        event = OrderEvent.CARRIER_RETURN_CONFIRMED
        self._require(state, event, OrderStatus.CANCELLED)
        if not state.tracking_token:
            raise self._reject(state, event, "no carrier tracking token")
        if not is_return_received_status(carrier_status):
            raise self._reject(state, event, f"carrier status '{carrier_status}' is not a received return")
        return replace(state, flags=_with_flag(state.flags, Flag.DELETED)), False
