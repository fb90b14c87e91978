#!/usr/bin/env python3
"""
CVE Sync Engine - debug API server
Exposes manual sync triggers, sync status and stored records over HTTP
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, HTTPException

from cve_db.config.settings import get_settings
from cve_db.logging_config import setup_logging
from cve_db.orchestration.sync_orchestrator import SyncOrchestrator
from cve_engine.api.routes import sync
from cve_engine.core import dependencies

settings = get_settings()
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    logger.info("Starting CVE Sync Engine...")
    dependencies.orchestrator = SyncOrchestrator.from_settings(settings)
    logger.info("CVE Sync Engine started successfully")

    yield

    logger.info("Shutting down CVE Sync Engine...")
    if dependencies.orchestrator:
        dependencies.orchestrator.close()
        dependencies.orchestrator = None


app = FastAPI(
    title="CVE Sync Engine API",
    description="Debug surface for the NVD / CISA KEV progressive sync",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

app.include_router(sync.router, prefix="/api", tags=["sync"])


@app.get("/health")
def health_check():
    """Detailed health check"""
    orchestrator = dependencies.orchestrator
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service unavailable")
    try:
        with dependencies.db_lock:
            stats = orchestrator.record_store.stats()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    return {
        "status": "healthy",
        "database": "connected",
        "total_cves": stats["total_count"],
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


if __name__ == "__main__":
    uvicorn.run(
        "cve_engine.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )
