"""
Job Completion API Routes

GET  /api/time-tracking/tasks  — task catalog for the time clock
POST /api/reconcile            — locked estimate + logged time entries → JobSummary
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from treeshop.api.deps import get_settings
from treeshop.models.schemas import ReconcileRequest
from treeshop.services.reconciliation_engine import JobReconciler, tasks_for_service
from treeshop.services.settings import PricingSettings

router = APIRouter(prefix="/api", tags=["Job Completion"])
logger = logging.getLogger("treeshop.api.jobs")


@router.get("/time-tracking/tasks")
async def time_tracking_tasks(service_type: Optional[str] = None):
    tasks = tasks_for_service(service_type)
    return {
        "tasks": [
            {
                "name": t.name,
                "category": t.category.value,
                "billable": t.billable,
                "counts_for_pph": t.counts_for_pph,
            }
            for t in tasks
        ]
    }


@router.post("/reconcile")
async def reconcile_job(payload: ReconcileRequest, settings: PricingSettings = Depends(get_settings)):
    summary = JobReconciler(settings).reconcile(
        payload.locked.to_engine(),
        [entry.to_engine() for entry in payload.time_entries],
        work_order_id=payload.work_order_id,
    )
    body = summary.to_dict()
    body["work_order_id"] = payload.work_order_id
    return body
