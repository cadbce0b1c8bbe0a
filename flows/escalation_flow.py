# ==== PREFECT ESCALATION FLOW ==== #

"""
Prefect flow that escalates unanswered confirmation requests.

Runs the hold phase and then the cancel phase of ``EscalationScheduler``.
Scheduled by ``scripts/serve_flows.py`` on ``ESCALATION_CRON`` in the
business timezone.
"""

import argparse
import asyncio
from datetime import date
from typing import Any, Dict, Optional

from prefect import flow, task, get_run_logger

from atelier.services.registry import aclose_all, build_escalation_scheduler


# ==== TASK DEFINITIONS ==== #


@task
async def run_escalation(today: Optional[date] = None) -> Dict[str, Any]:
    """
    Run one escalation pass over ``order_ready`` and ``on_hold`` orders.

    Args:
        today: Business date override

    Returns:
        Dict[str, Any]: Serialized ``JobReport``
    """
    logger = get_run_logger()

    try:
        report = await build_escalation_scheduler().run(today)
    finally:
        await aclose_all()

    for error in report.errors:
        logger.warning(f"Escalation failure: {error}")
    return report.model_dump()


# ==== MAIN FLOW DEFINITION ==== #


@flow(name="escalation", log_prints=True)
async def escalation_flow(today: Optional[date] = None) -> Dict[str, Any]:
    """
    Escalate overdue orders through ``on_hold`` to ``cancelled``.

    Per-order failures are reported; a failure to list orders fails the run.

    Args:
        today: Business date override, defaults to today in the business timezone

    Returns:
        Dict[str, Any]: Serialized ``JobReport``
    """
    logger = get_run_logger()

    report = await run_escalation(today)

    passes = report["passes"]
    logger.info(
        f"Escalation for {report['today']}: "
        f"{passes['hold']['successful']} moved to on_hold, "
        f"{passes['cancel']['successful']} cancelled, "
        f"{report['failed']} failed"
    )
    return report


# ==== COMMAND LINE INTERFACE ==== #


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Escalation flow")
    parser.add_argument("--today", type=date.fromisoformat, help="Business date (YYYY-MM-DD)")

    args = parser.parse_args()

    result = asyncio.run(escalation_flow(today=args.today))
    print(f"Flow completed: {result}")
