"""
Sync API routes - manual sync triggers, status and record lookups
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from cve_db.orchestration.sync_orchestrator import SyncOrchestrator
from cve_db.sources.base.exceptions import ConfigException
from cve_engine.core.dependencies import db_lock, get_orchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/sync-cves")
def sync_cves(
    action: str = Query(..., description="sync or status"),
    sync_type: str = Query("recent", alias="type", description="recent, full, continue or cisa"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Trigger a sync run or report sync status"""
    if action == "status":
        with db_lock:
            return orchestrator.get_status()

    if action == "sync":
        try:
            with db_lock:
                result = orchestrator.sync(sync_type)
        except ConfigException as e:
            return JSONResponse(status_code=400, content={"success": False, "synced": 0, "error": str(e)})

        return {
            "success": result.success,
            "synced": result.records_added + result.records_updated,
            "result": result.to_dict(),
        }

    return JSONResponse(status_code=400, content={"error": "Unknown action"})


@router.get("/cves/{cve_id}")
def get_cve(cve_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Get one stored CVE record"""
    with db_lock:
        record = orchestrator.record_store.get(cve_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"{cve_id} not found")

    return {
        **record.to_dict(),
        "is_exploited": record.is_exploited,
        "vendor": record.vendor,
        "product": record.product,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
