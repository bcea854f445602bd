"""PM Engine — Preventive maintenance scheduler routes"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from typing import List, Optional
import logging

from core.config import settings
from modules.pm.engine import build_scheduler
from modules.pm.errors import DataUnavailableError
from modules.pm.schemas import RunReportResponse, RunRequest, SchedulerRunResponse

log = logging.getLogger("pm.api")

router = APIRouter()


def get_registry(request: Request):
    return request.app.state.registry


# ──────────────────────────────────────────────
# Scheduler
# ──────────────────────────────────────────────

@router.post("/pm/run", response_model=RunReportResponse, tags=["PM"])
def run_pm_endpoint(body: Optional[RunRequest] = None, registry=Depends(get_registry)):
    """Run one preventive maintenance pass, optionally for a single tenant."""
    body = body or RunRequest()
    if body.now is not None and not settings.debug:
        raise HTTPException(status_code=400, detail="now override requires debug mode")
    try:
        scheduler = build_scheduler(registry)
    except LookupError as e:
        log.error(f"PM scheduler not wired: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    try:
        report = scheduler.run(tenant_id=body.tenant_id, now=body.now)
    except DataUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message)

    return RunReportResponse(
        success=report.success,
        message=(
            f"Generated {report.generated} work items, skipped {report.skipped}, "
            f"{len(report.errors)} errors"
        ),
        **report.to_dict(),
    )


@router.get("/pm/runs", response_model=List[SchedulerRunResponse], tags=["PM"])
def list_pm_runs(
    tenant_id: Optional[int] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    registry=Depends(get_registry),
):
    """Recent scheduler passes, newest first."""
    store = registry.get_provider("PmTaskStore")
    if store is None or not hasattr(store, "recent_runs"):
        raise HTTPException(status_code=503, detail="PM run history unavailable")
    return store.recent_runs(limit=limit or settings.pm_run_history_limit, tenant_id=tenant_id)
