# ==== PREFECT FLOWS PACKAGE ==== #

"""
Prefect flows for the periodic fulfillment jobs.

- escalation_flow: order_ready → on_hold → cancelled for unanswered requests
- carrier_reconciliation_flow: carrier pickup, delivery and return statuses
"""

from .escalation_flow import escalation_flow
from .carrier_reconciliation_flow import carrier_reconciliation_flow

__all__ = [
    "escalation_flow",
    "carrier_reconciliation_flow"
]
