# ==== PREFECT CARRIER RECONCILIATION FLOW ==== #

"""
Prefect flow that reconciles shipped, ready-to-ship and cancelled orders
against the carrier's parcel feed.

A rejected carrier login or an unavailable feed fails the run; the next
scheduled run starts from scratch.
"""

import argparse
import asyncio
from datetime import date
from typing import Any, Dict, Optional

from prefect import flow, task, get_run_logger

from atelier.services.registry import aclose_all, build_carrier_reconciliation_job


# ==== TASK DEFINITIONS ==== #


@task
async def run_carrier_reconciliation(today: Optional[date] = None) -> Dict[str, Any]:
    """
    Run the delivered, pickup and return passes once.

    Args:
        today: Business date override

    Returns:
        Dict[str, Any]: Serialized ``JobReport``
    """
    logger = get_run_logger()

    try:
        report = await build_carrier_reconciliation_job().run(today)
    finally:
        await aclose_all()

    for error in report.errors:
        logger.warning(f"Reconciliation failure: {error}")
    return report.model_dump()


# ==== MAIN FLOW DEFINITION ==== #


@flow(name="carrier-reconciliation", log_prints=True)
async def carrier_reconciliation_flow(today: Optional[date] = None) -> Dict[str, Any]:
    """
    Reconcile local order status with the carrier.

    Args:
        today: Business date override, defaults to today in the business timezone

    Returns:
        Dict[str, Any]: Serialized ``JobReport``
    """
    logger = get_run_logger()

    report = await run_carrier_reconciliation(today)

    passes = report["passes"]
    logger.info(
        f"Carrier reconciliation for {report['today']}: "
        f"{report['parcels_fetched']} parcels, "
        f"{passes['delivered']['successful'] + passes['delivered_legacy']['successful']} fulfilled, "
        f"{passes['pickup']['successful']} shipped, "
        f"{passes['returns']['successful']} returns, "
        f"{report['failed']} failed"
    )
    return report


# ==== COMMAND LINE INTERFACE ==== #


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Carrier reconciliation flow")
    parser.add_argument("--today", type=date.fromisoformat, help="Business date (YYYY-MM-DD)")

    args = parser.parse_args()

    result = asyncio.run(carrier_reconciliation_flow(today=args.today))
    print(f"Flow completed: {result}")
