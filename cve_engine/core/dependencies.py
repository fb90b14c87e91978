"""
Shared instances for the web debug surface
"""

import threading
from typing import Optional

from fastapi import HTTPException

from cve_db.orchestration.sync_orchestrator import SyncOrchestrator

# Set by the application lifespan
orchestrator: Optional[SyncOrchestrator] = None

# Every request shares one SQLite connection; syncs and reads take turns
db_lock = threading.Lock()


def get_orchestrator() -> SyncOrchestrator:
    """Get the sync orchestrator instance"""
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Sync service not initialised")
    return orchestrator
