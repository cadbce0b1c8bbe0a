"""
Error taxonomy for the fulfillment core.

Per-order errors are caught at the order-processing boundary of every job;
only ``CarrierAuthenticationError`` aborts a whole reconciliation cycle.
"""

from typing import Optional


class FulfillmentError(Exception):
    """Base class for all fulfillment errors."""


class TransientAdapterError(FulfillmentError):
    """Network failure, timeout or 5xx/429 response from an external adapter.

    The affected order is skipped and picked up again on the next cycle.
    """

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class OrderNotFound(FulfillmentError):
    """Order vanished from the external store between snapshot and write."""

    def __init__(self, order_ref: str):
        super().__init__(f"Order not found: {order_ref}")
        self.order_ref = order_ref


class InvalidLabelState(FulfillmentError):
    """Label set carries more than one status flag (strict decoding only)."""

    def __init__(self, statuses: list[str]):
        super().__init__(f"Multiple status labels present: {', '.join(statuses)}")
        self.statuses = statuses


class TransitionRejected(FulfillmentError):
    """State machine guard failed for the requested event."""

    def __init__(self, event: str, status: str, reason: str):
        super().__init__(f"{event} rejected in status {status}: {reason}")
        self.event = event
        self.status = status
        self.reason = reason


class CorrelationMiss(FulfillmentError):
    """Inbound reply could not be matched to a waiting order."""

    def __init__(self, phone: str, context_id: Optional[str] = None):
        super().__init__(f"No waiting order for reply from {phone}")
        self.phone = phone
        self.context_id = context_id


class CarrierAuthenticationError(FulfillmentError):
    """Carrier refused the credentials; aborts the current reconciliation cycle."""


class AdapterRequestError(FulfillmentError):
    """External adapter refused a request with a non-retryable 4xx response."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code
