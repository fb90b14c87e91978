"""
CVE Progressive Sync

Keeps a local SQLite store of CVE records in step with the NVD CVE API 2.0
and the CISA Known Exploited Vulnerabilities catalog.

Architecture:
- sources/: upstream clients (NVD, CISA) and their parsers
- db/: record store and per-stream sync progress (SQLite)
- orchestration/: the recent/full/continue/cisa sync streams
- scripts/: the sync CLI and the continuous scheduler

Usage:
    from cve_db.config.settings import get_settings
    from cve_db.orchestration.sync_orchestrator import SyncOrchestrator

    orchestrator = SyncOrchestrator.from_settings(get_settings())
    result = orchestrator.sync("recent")
"""

__version__ = "1.0.0"
