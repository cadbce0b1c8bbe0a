# ==== OPERATOR ORDER EVENT ROUTES ==== #

"""
Operator-triggered order events.

``request_ready`` marks a pending order ready for pickup and, unless
``notify_customer`` is false, sends the WhatsApp confirmation request.
``mark_ready_to_ship`` records the carrier tracking token once the carrier
order exists. ``manual_cancel`` cancels from any status.
"""

from fastapi import APIRouter, Depends, HTTPException

from atelier.business.clock import local_today
from atelier.business.state_machine import OrderEvent
from atelier.errors import (
    AdapterRequestError,
    OrderNotFound,
    TransientAdapterError,
    TransitionRejected,
)
from atelier.observability.tracing import get_tracer
from atelier.schemas.orders import OperatorEvent, OrderEventRequest, OrderEventResponse
from atelier.services.confirmation import ConfirmationCorrelator
from atelier.services.order_transitions import OrderTransitionService
from atelier.services.ports import OrderStore
from atelier.services.registry import (
    build_confirmation_correlator,
    build_transitions,
    get_order_store,
)
from atelier.settings import settings


router = APIRouter()
tracer = get_tracer(__name__)

DEFAULT_ACTOR = "operator"


@router.post("/{order_id}/events", response_model=OrderEventResponse)
async def apply_order_event(
    order_id: int,
    body: OrderEventRequest,
    store: OrderStore = Depends(get_order_store),
    transitions: OrderTransitionService = Depends(build_transitions),
    correlator: ConfirmationCorrelator = Depends(build_confirmation_correlator),
) -> OrderEventResponse:
    """
    Apply an operator event to one order.

    Args:
        order_id: Shopify order id
        body: Event, optional tracking token and actor

    Returns:
        OrderEventResponse: Transition outcome with the labels written

    Raises:
        HTTPException: 404 for unknown orders, 409 when the event is not
            legal in the order's status, 502 on order store failures
    """
    actor = body.actor or DEFAULT_ACTOR
    today = local_today(settings.BUSINESS_TIMEZONE)
    message_id = None

    with tracer.start_as_current_span("operator_order_event") as span:
        span.set_attribute("order_id", order_id)
        span.set_attribute("event", body.event.value)

        try:
            order = await store.get_order(order_id)

            if body.event is OperatorEvent.REQUEST_READY and body.notify_customer:
                ready = await correlator.request_ready(order, today=today, actor=actor)
                outcome = ready.transition
                message_id = ready.message_id
            else:
                outcome = await transitions.apply(
                    order,
                    OrderEvent(body.event.value),
                    today=today,
                    tracking_token=body.tracking_token,
                    actor=actor,
                )
        except OrderNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except TransitionRejected as e:
            raise HTTPException(status_code=409, detail=str(e))
        except (TransientAdapterError, AdapterRequestError) as e:
            raise HTTPException(status_code=502, detail=str(e))

        span.set_attribute("applied", outcome.applied)

    return OrderEventResponse(
        order_id=outcome.order_id,
        order_name=outcome.order_name,
        event=outcome.event.value,
        applied=outcome.applied,
        previous_status=outcome.previous_status,
        new_status=outcome.new_status,
        labels=outcome.labels,
        confirmation_message_id=message_id,
    )
