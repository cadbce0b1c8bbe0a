# ==== MANUAL JOB TRIGGER ROUTES ==== #

"""
Force-run endpoints for the periodic jobs.

Both return the job's aggregate report. A cycle that aborts as a whole
(carrier login refused, order listing or parcel feed unavailable) answers
502 instead.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from atelier.errors import AdapterRequestError, CarrierAuthenticationError, TransientAdapterError
from atelier.observability.tracing import get_tracer
from atelier.schemas.jobs import JobReport
from atelier.services.carrier_reconciliation import CarrierReconciliationJob
from atelier.services.escalation import EscalationScheduler
from atelier.services.registry import (
    build_carrier_reconciliation_job,
    build_escalation_scheduler,
)


router = APIRouter()
tracer = get_tracer(__name__)


@router.post("/escalation/run", response_model=JobReport)
async def run_escalation(
    today: Optional[date] = Query(None, description="Business date override, defaults to today"),
    scheduler: EscalationScheduler = Depends(build_escalation_scheduler),
) -> JobReport:
    """
    Run both escalation phases now.

    Raises:
        HTTPException: 502 if orders cannot be listed
    """
    with tracer.start_as_current_span("trigger_escalation"):
        try:
            return await scheduler.run(today)
        except (TransientAdapterError, AdapterRequestError) as e:
            raise HTTPException(status_code=502, detail=f"Escalation aborted: {e}")


@router.post("/carrier-reconciliation/run", response_model=JobReport)
async def run_carrier_reconciliation(
    today: Optional[date] = Query(None, description="Business date override, defaults to today"),
    job: CarrierReconciliationJob = Depends(build_carrier_reconciliation_job),
) -> JobReport:
    """
    Run one carrier reconciliation cycle now.

    Raises:
        HTTPException: 502 if the carrier login fails or a feed is unavailable
    """
    with tracer.start_as_current_span("trigger_carrier_reconciliation"):
        try:
            return await job.run(today)
        except (CarrierAuthenticationError, TransientAdapterError, AdapterRequestError) as e:
            raise HTTPException(status_code=502, detail=f"Carrier reconciliation aborted: {e}")
