#!/usr/bin/env python3

# ==== PREFECT FLOW SERVER ==== #

"""
Serve the fulfillment flows with their cron schedules.

Deployed Flows:
1. escalation: ``ESCALATION_CRON`` (default every 6 hours)
2. carrier-reconciliation: ``CARRIER_RECONCILIATION_CRON`` (default every 30 minutes)

Both schedules run in ``BUSINESS_TIMEZONE``.

Usage:
    python scripts/serve_flows.py
"""

from prefect import serve
from prefect.client.schemas.schedules import CronSchedule

from atelier.observability.logging import init_logging
from atelier.settings import settings
from flows.carrier_reconciliation_flow import carrier_reconciliation_flow
from flows.escalation_flow import escalation_flow


def main() -> None:
    init_logging(settings.LOG_LEVEL, settings.LOG_TO_FILES)

    escalation = escalation_flow.to_deployment(
        name="escalation-scheduled",
        tags=["fulfillment", "escalation"],
        description="Moves unanswered order_ready orders to on_hold, then to cancelled",
        schedules=[CronSchedule(cron=settings.ESCALATION_CRON, timezone=settings.BUSINESS_TIMEZONE)],
    )
    reconciliation = carrier_reconciliation_flow.to_deployment(
        name="carrier-reconciliation-scheduled",
        tags=["fulfillment", "carrier"],
        description="Applies carrier pickup, delivery and return statuses to orders",
        schedules=[
            CronSchedule(cron=settings.CARRIER_RECONCILIATION_CRON, timezone=settings.BUSINESS_TIMEZONE)
        ],
    )

    serve(escalation, reconciliation)


if __name__ == "__main__":
    main()
