"""
Continuous CVE Sync Scheduler

OBJECTIVE:
Long-running process that keeps the local CVE store current without an
operator: the KEV catalog daily, recent NVD publications hourly, and the
historical walk one budget-sized slice per tick until it reaches the floor year.

SCHEDULING STRATEGY:
1. cisa     every CISA_SYNC_INTERVAL_SECONDS (24h) after its last successful run
2. recent   every RECENT_SYNC_INTERVAL_SECONDS (1h) after its last successful run
3. continue on every tick while the `full` stream is not completed
4. Sleep TICK_INTERVAL_SECONDS (5 minutes) between ticks

FAILURE HANDLING:
- A failing stream is logged and does not stop the other streams in the tick
- A failed stream keeps its old last-success time, so it is retried next tick
- Errors escaping a tick trigger an ERROR_BACKOFF_SECONDS sleep; the loop never exits on them
- Ctrl+C stops the loop cleanly
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from pydantic import ValidationError

from cve_db.config.settings import Settings, get_settings
from cve_db.db.progress_tracker import ProgressTracker
from cve_db.logging_config import setup_logging
from cve_db.models import SyncRunResult, SyncStatus
from cve_db.orchestration.sync_orchestrator import STREAM_FULL, SyncOrchestrator, SyncType

logger = logging.getLogger(__name__)


@dataclass
class ScheduledStream:
    """An interval-driven sync stream"""
    name: str
    sync_type: SyncType
    interval_seconds: float
    last_success: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        if self.last_success is None:
            return True
        return (now - self.last_success).total_seconds() > self.interval_seconds


class ContinuousSyncRunner:
    """Runs the sync streams on their intervals, forever"""

    def __init__(self, orchestrator: SyncOrchestrator, tracker: ProgressTracker, settings: Settings,
                 sleep: Callable[[float], None] = time.sleep, now: Callable[[], datetime] = None):
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.sleep = sleep
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.tick_interval = settings.TICK_INTERVAL_SECONDS
        self.error_backoff = settings.ERROR_BACKOFF_SECONDS

        # Order matters: CISA first, then recent
        self.scheduled_streams = {
            'cisa': ScheduledStream('cisa', SyncType.CISA, settings.CISA_SYNC_INTERVAL_SECONDS),
            'recent': ScheduledStream('recent', SyncType.RECENT, settings.RECENT_SYNC_INTERVAL_SECONDS),
        }
        self._seed_last_success()

    def _seed_last_success(self):
        """Take last-success times from persisted progress so a restart does not re-run everything"""
        for stream in self.scheduled_streams.values():
            progress = self.tracker.get(stream.name)
            if progress and progress.status == SyncStatus.COMPLETED and progress.updated_at:
                stream.last_success = progress.updated_at
                logger.info(f"Stream {stream.name} last completed at {progress.updated_at.isoformat()}")

    def run_tick(self) -> Dict[str, Optional[SyncRunResult]]:
        """
        Run every stream that is due

        Returns the result per attempted stream (None when the attempt raised).
        """
        results = {}
        current_time = self.now()

        for stream in self.scheduled_streams.values():
            if not stream.is_due(current_time):
                continue
            result = self._run_stream(stream.sync_type)
            results[stream.name] = result
            if result is not None and result.success:
                stream.last_success = current_time

        full_progress = self.tracker.get(STREAM_FULL)
        if full_progress is None or full_progress.status != SyncStatus.COMPLETED:
            results[SyncType.CONTINUE.value] = self._run_stream(SyncType.CONTINUE)

        self._log_database_stats()
        return results

    def _run_stream(self, sync_type: SyncType) -> Optional[SyncRunResult]:
        logger.info(f"🚀 Running scheduled {sync_type.value} sync")
        try:
            result = self.orchestrator.sync(sync_type)
        except Exception as e:
            logger.error(f"❌ Scheduled {sync_type.value} sync failed: {e}")
            return None

        if result.success:
            logger.info(f"✅ {sync_type.value}: {result.records_processed} processed "
                        f"({result.records_added} new, {result.records_updated} updated)")
        else:
            logger.warning(f"⚠️ {sync_type.value} finished with errors: {'; '.join(result.errors)}")
        return result

    def _log_database_stats(self):
        stats = self.orchestrator.record_store.stats()
        logger.info(f"📊 Database: {stats['total_count']} CVEs, {stats['cisa_exploited']} known exploited, "
                    f"published {stats['oldest_published_at']} → {stats['newest_published_at']}")

    def run_forever(self, max_ticks: Optional[int] = None):
        """Tick until interrupted (or until max_ticks ticks have run)"""
        logger.info("🕒 Starting continuous CVE sync")
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            ticks += 1
            try:
                self.run_tick()
                delay = self.tick_interval
            except KeyboardInterrupt:
                logger.info("Continuous sync interrupted by user")
                break
            except Exception as e:
                logger.error(f"❌ Sync tick failed: {e}")
                # Sleep longer on error to avoid tight error loops
                delay = self.error_backoff

            try:
                self.sleep(delay)
            except KeyboardInterrupt:
                logger.info("Continuous sync interrupted by user")
                break

        logger.info("Continuous CVE sync stopped")


def main(argv=None):
    """
    Run the continuous sync loop

    USAGE EXAMPLES:
    cve-sync-continuous
    python -m cve_db.scripts.scheduler --log-level DEBUG
    """
    parser = argparse.ArgumentParser(description='Continuous CVE sync (NVD + CISA KEV)')
    parser.add_argument('--log-level', default=None, help='Logging level (default: LOG_LEVEL setting)')
    parser.add_argument('--max-ticks', type=int, default=None, help='Stop after this many ticks')
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging(args.log_level or "INFO")
        logger.error(f"❌ Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(args.log_level or settings.LOG_LEVEL, settings.LOG_FILE)

    try:
        orchestrator = SyncOrchestrator.from_settings(settings)
    except Exception as e:
        logger.error(f"❌ Unable to start: {e}")
        sys.exit(1)

    try:
        runner = ContinuousSyncRunner(orchestrator, orchestrator.tracker, settings)
        runner.run_forever(max_ticks=args.max_ticks)
    finally:
        orchestrator.close()
    sys.exit(0)


if __name__ == "__main__":
    main()
