"""
Scheduled sync trigger endpoint
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from api.dependencies import get_orchestrator, is_cron_authorized
from ingestion.runner import SyncOrchestrator, summarize_partners
from schemas.api import SyncTriggerResponse
import time
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cron", tags=["Sync"])


async def _run_sync(
    request: Request,
    partner: Optional[str],
    orchestrator: SyncOrchestrator,
):
    start_time = time.time()

    if not is_cron_authorized(request):
        return JSONResponse(
            status_code=401,
            content={"success": False, "error": "Unauthorized - Invalid secret"}
        )

    logger.info(f"Cron: starting partner sync (filter={partner})")

    try:
        run = await orchestrator.run_all(partner_filter=partner)
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.exception("Cron: sync failed")
        return JSONResponse(
            status_code=500,
            content=SyncTriggerResponse(
                success=False,
                message="Sync failed",
                duration_ms=duration_ms,
                error=str(e),
            ).model_dump()
        )

    duration_ms = int((time.time() - start_time) * 1000)
    return SyncTriggerResponse(
        success=run.error_message is None,
        message="Sync completed" if run.error_message is None else "Sync aborted",
        duration_ms=duration_ms,
        result={
            "partners_found": run.partners_found,
            "totals": run.totals,
            "partners": summarize_partners(run),
        },
        error=run.error_message,
    )


@router.get("/sync", response_model=SyncTriggerResponse)
async def cron_sync_get(
    request: Request,
    partner: Optional[str] = Query(None, description="Only sync partners whose name contains this text"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Scheduler entry point"""
    return await _run_sync(request, partner, orchestrator)


@router.post("/sync", response_model=SyncTriggerResponse)
async def cron_sync_post(
    request: Request,
    partner: Optional[str] = Query(None, description="Only sync partners whose name contains this text"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Manual trigger"""
    return await _run_sync(request, partner, orchestrator)
