#!/usr/bin/env python3
"""
CVE Sync Orchestrator

OBJECTIVE:
Drives the four sync streams that keep the local record store in step with
NVD and the CISA Known Exploited Vulnerabilities catalog, persisting resume
state after every unit of work so an interrupted run picks up where it left off.

SYNC STREAMS:
1. recent   - CVEs published in the last RECENT_WINDOW_DAYS, offset-paginated
2. full     - historical walk, current year down to FLOOR_YEAR, one year at a time
3. continue - resumes `full` one year below its last completed year
4. cisa     - merges the KEV catalog, enriching ids that lack NVD data when possible

RATE LIMITING:
- Consecutive NVD requests are spaced by REQUEST_DELAY_SECONDS
- recent/full/continue stop after MAX_REQUESTS_PER_RUN pages and resume next run
- Retries for transient errors and HTTP 429 live in the fetchers

INTEGRATION:
- SourceClient for upstream access (never raises for upstream failures)
- RecordStore for CVE rows, ProgressTracker for per-stream resume state
- Used by the sync CLI, the continuous scheduler and the web debug surface
"""

import logging
import re
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tqdm import tqdm

from cve_db.config.settings import Settings
from cve_db.db.progress_tracker import ProgressTracker
from cve_db.db.record_store import RecordStore
from cve_db.models import SyncRunResult, SyncStatus, UpsertOutcome, VulnerabilityRecord
from cve_db.sources.base.exceptions import ConfigException, ParseException
from cve_db.sources.base.results import BatchResult
from cve_db.sources.cisa.parser import build_cisa_record, kev_cve_id
from cve_db.sources.nvd.fetcher import format_nvd_date, recent_window, year_windows
from cve_db.sources.nvd.parser import parse_nvd_item
from cve_db.sources.source_client import SourceClient

logger = logging.getLogger(__name__)

STREAM_RECENT = "recent"
STREAM_FULL = "full"
STREAM_CISA = "cisa"
STREAMS = (STREAM_RECENT, STREAM_FULL, STREAM_CISA)

YEAR_CURSOR_PATTERN = re.compile(r'^year_(\d{4})$')


class SyncType(Enum):
    """Sync run types accepted by SyncOrchestrator.sync"""
    RECENT = "recent"
    FULL = "full"
    CONTINUE = "continue"
    CISA = "cisa"


class FullSyncState(Enum):
    """States of the historical year walk"""
    NEXT_YEAR = "next_year"
    FETCH_PAGE = "fetch_page"
    YEAR_COMPLETE = "year_complete"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"
    COMPLETED = "completed"


TERMINAL_FULL_STATES = (FullSyncState.BUDGET_EXHAUSTED, FullSyncState.FAILED, FullSyncState.COMPLETED)


def year_cursor(year: int) -> str:
    return f"year_{year}"


def parse_year_cursor(cursor: Optional[str]) -> Optional[int]:
    match = YEAR_CURSOR_PATTERN.match(cursor or '')
    return int(match.group(1)) if match else None


class SyncOrchestrator:
    """Runs one sync stream at a time against the injected client and stores"""

    def __init__(self, source_client: SourceClient, record_store: RecordStore, tracker: ProgressTracker,
                 settings: Settings, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 now: Callable[[], datetime] = None, show_progress: bool = False):
        self.source_client = source_client
        self.record_store = record_store
        self.tracker = tracker
        self.clock = clock
        self.sleep = sleep
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.show_progress = show_progress

        self.request_delay = settings.REQUEST_DELAY_SECONDS
        self.max_requests = settings.MAX_REQUESTS_PER_RUN
        self.recent_window_days = settings.RECENT_WINDOW_DAYS
        self.floor_year = settings.FLOOR_YEAR
        self.enrich_with_nvd = settings.CISA_ENRICH_WITH_NVD

        self._last_request_at: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "SyncOrchestrator":
        """Wire the real NVD/CISA client and the SQLite stores at DATABASE_PATH"""
        sleep = kwargs.get('sleep', time.sleep)
        record_store = RecordStore(settings.DATABASE_PATH)
        tracker = ProgressTracker(settings.DATABASE_PATH)
        try:
            record_store.connect()
            tracker.connect()
            source_client = SourceClient.from_settings(settings, sleep=sleep)
        except Exception:
            record_store.close()
            tracker.close()
            raise
        return cls(source_client, record_store, tracker, settings, **kwargs)

    def close(self):
        self.source_client.close()
        self.record_store.close()
        self.tracker.close()

    def sync(self, sync_type) -> SyncRunResult:
        """
        Run one sync of the given type

        Upstream failures and store errors end the run with success=False;
        only an unknown sync type raises.

        Raises:
            ConfigException: if sync_type is not one of recent/full/continue/cisa
        """
        try:
            sync_type = SyncType(sync_type)
        except ValueError:
            raise ConfigException(f"Unknown sync type: {sync_type}", config_key="sync_type")

        handlers = {
            SyncType.RECENT: self._sync_recent,
            SyncType.FULL: self._sync_full,
            SyncType.CONTINUE: self._sync_continue,
            SyncType.CISA: self._sync_cisa,
        }

        result = SyncRunResult(stream=sync_type.value, start_time=self.now())
        logger.info(f"🚀 Starting {sync_type.value} sync")
        try:
            handlers[sync_type](result)
        except Exception as e:
            logger.error(f"❌ {sync_type.value} sync aborted: {e}")
            result.errors.append(str(e))
            result.success = False
        result.end_time = self.now()

        self._log_summary(result)
        return result

    def get_status(self) -> Dict[str, Any]:
        """Database statistics plus the stored progress of every stream"""
        progress = {}
        for stream in STREAMS:
            stored = self.tracker.get(stream)
            progress[stream] = stored.to_dict() if stored else None
        return {
            'database_stats': self.record_store.stats(),
            'sync_progress': progress,
        }

    # ------------------------------------------------------------------ recent

    def _sync_recent(self, result: SyncRunResult):
        progress = self.tracker.get(STREAM_RECENT)
        total = progress.total_processed if progress else 0
        cursor = progress.cursor if progress else ""
        window = recent_window(self.now(), self.recent_window_days)
        offset = 0
        status = SyncStatus.IN_PROGRESS

        while True:
            if self._budget_exhausted(result):
                logger.warning(f"⏸️ Request budget of {self.max_requests} used; recent sync resumes next run")
                break

            batch = self._fetch_nvd_page(window, offset, result)
            if batch.failed:
                self._record_failure(result, batch)
                break
            if not batch.items:
                status = SyncStatus.COMPLETED
                break

            cursor = self._store_nvd_items(batch.items, result) or cursor
            total += len(batch.items)
            offset += len(batch.items)
            self.tracker.update(STREAM_RECENT, cursor, total, SyncStatus.IN_PROGRESS)
            logger.info(f"📊 recent: {offset}/{batch.total_available} processed")

            if batch.next_cursor is None or offset >= batch.total_available:
                status = SyncStatus.COMPLETED
                break

        if result.success and status == SyncStatus.COMPLETED:
            self.tracker.update(STREAM_RECENT, cursor, total, SyncStatus.COMPLETED)
        result.status = status
        result.cursor = cursor

    # -------------------------------------------------------------- full walk

    def _sync_continue(self, result: SyncRunResult):
        progress = self.tracker.get(STREAM_FULL)
        if progress is None or progress.status == SyncStatus.COMPLETED:
            logger.info("🔄 No unfinished full sync; starting a new one from the current year")
            self._sync_full(result)
            return

        last_year = parse_year_cursor(progress.cursor)
        if last_year is None:
            start_year = self.now().year
            logger.warning(f"⚠️ Unrecognised full sync cursor {progress.cursor!r}; restarting at {start_year}")
        else:
            start_year = last_year - 1
            logger.info(f"🔄 Resuming full sync at {start_year} (last completed: {last_year})")
        self._sync_full(result, start_year=start_year, total=progress.total_processed,
                        last_cursor=progress.cursor)

    def _sync_full(self, result: SyncRunResult, start_year: Optional[int] = None,
                   total: Optional[int] = None, last_cursor: str = ""):
        if total is None:
            progress = self.tracker.get(STREAM_FULL)
            total = progress.total_processed if progress else 0

        year = start_year if start_year is not None else self.now().year
        windows: List[Dict[str, str]] = []
        window_index = 0
        offset = 0
        state = FullSyncState.NEXT_YEAR

        while state not in TERMINAL_FULL_STATES:
            if state == FullSyncState.NEXT_YEAR:
                if year < self.floor_year:
                    last_cursor = year_cursor(self.floor_year)
                    self.tracker.update(STREAM_FULL, last_cursor, total, SyncStatus.COMPLETED)
                    logger.info(f"🎉 Full sync reached {self.floor_year}; history complete")
                    state = FullSyncState.COMPLETED
                elif self._budget_exhausted(result):
                    state = FullSyncState.BUDGET_EXHAUSTED
                else:
                    windows = self._windows_for_year(year)
                    window_index = 0
                    offset = 0
                    logger.info(f"📅 Syncing CVEs published in {year}")
                    state = FullSyncState.FETCH_PAGE if windows else FullSyncState.YEAR_COMPLETE

            elif state == FullSyncState.FETCH_PAGE:
                if self._budget_exhausted(result):
                    # The partially walked year is recorded as done
                    last_cursor = year_cursor(year)
                    self.tracker.update(STREAM_FULL, last_cursor, total, SyncStatus.IN_PROGRESS)
                    state = FullSyncState.BUDGET_EXHAUSTED
                    continue

                batch = self._fetch_nvd_page(windows[window_index], offset, result)
                if batch.failed:
                    self._record_failure(result, batch)
                    state = FullSyncState.FAILED
                    continue

                self._store_nvd_items(batch.items, result)
                total += len(batch.items)
                offset += len(batch.items)
                self.tracker.update(STREAM_FULL, last_cursor, total, SyncStatus.IN_PROGRESS)

                if batch.items and batch.next_cursor is not None and offset < batch.total_available:
                    continue
                window_index += 1
                offset = 0
                if window_index >= len(windows):
                    state = FullSyncState.YEAR_COMPLETE

            elif state == FullSyncState.YEAR_COMPLETE:
                last_cursor = year_cursor(year)
                self.tracker.update(STREAM_FULL, last_cursor, total, SyncStatus.IN_PROGRESS)
                logger.info(f"✅ Year {year} complete ({total} processed in total)")
                year -= 1
                state = FullSyncState.NEXT_YEAR

        if state == FullSyncState.BUDGET_EXHAUSTED:
            logger.warning(f"⏸️ Request budget of {self.max_requests} used; "
                           f"run `continue` to resume below {last_cursor or year}")

        result.status = SyncStatus.COMPLETED if state == FullSyncState.COMPLETED else SyncStatus.IN_PROGRESS
        result.cursor = last_cursor

    def _windows_for_year(self, year: int) -> List[Dict[str, str]]:
        # Quarters that start in the future cannot have published CVEs
        now = format_nvd_date(self.now())
        return [w for w in year_windows(year) if w['pubStartDate'] <= now]

    # ------------------------------------------------------------------- cisa

    def _sync_cisa(self, result: SyncRunResult):
        progress = self.tracker.get(STREAM_CISA)
        total = progress.total_processed if progress else 0
        cursor = progress.cursor if progress else ""

        result.requests_made += 1
        catalog = self.source_client.fetch_batch(STREAM_CISA)
        catalog.raise_for_status()

        for entry in tqdm(catalog.items, desc="Merging CISA KEV", unit="cve", disable=not self.show_progress):
            result.records_processed += 1
            try:
                cve_id = kev_cve_id(entry)
                self._count_outcome(result, self._merge_kev_entry(cve_id, entry, result))
                cursor = cve_id
            except ParseException as e:
                result.records_failed += 1
                logger.warning(f"⚠️ Skipping KEV entry: {e}")
            except Exception as e:
                result.records_failed += 1
                logger.error(f"❌ Failed to merge KEV entry {entry.get('cveID') if isinstance(entry, dict) else entry}: {e}")

        total += result.records_processed
        self.tracker.update(STREAM_CISA, cursor, total, SyncStatus.COMPLETED)
        result.status = SyncStatus.COMPLETED
        result.cursor = cursor

    def _merge_kev_entry(self, cve_id: str, entry: Dict[str, Any], result: SyncRunResult) -> UpsertOutcome:
        outcome = self.record_store.attach_cisa_data(cve_id, entry)
        if outcome is not None:
            if not self.enrich_with_nvd or not self.record_store.get(cve_id).is_synthesized:
                return outcome
            # KEV-only record from an earlier failed lookup: try NVD again
            record = self._lookup_nvd_record(cve_id, entry, result)
            if record is None:
                return outcome
            return self.record_store.upsert(record)

        record = None
        if self.enrich_with_nvd:
            record = self._lookup_nvd_record(cve_id, entry, result)
        if record is None:
            record = build_cisa_record(entry)
        return self.record_store.upsert(record)

    def _lookup_nvd_record(self, cve_id: str, entry: Dict[str, Any],
                           result: SyncRunResult) -> Optional[VulnerabilityRecord]:
        """NVD record for a KEV entry with cisa_data attached, or None when NVD has nothing usable"""
        self._throttle()
        result.requests_made += 1
        lookup = self.source_client.fetch_single(cve_id)
        if not (lookup.ok and lookup.items):
            logger.debug(f"NVD lookup for {cve_id} returned {lookup.status.value}; using KEV data only")
            return None
        try:
            return parse_nvd_item(lookup.items[0], cisa_data=dict(entry))
        except ParseException as e:
            logger.warning(f"⚠️ Unusable NVD record for {cve_id}: {e}")
            return None

    # ---------------------------------------------------------------- helpers

    def _fetch_nvd_page(self, window: Dict[str, str], offset: int, result: SyncRunResult) -> BatchResult:
        self._throttle()
        result.requests_made += 1
        return self.source_client.fetch_batch('nvd', window, offset)

    def _store_nvd_items(self, items: List[Dict[str, Any]], result: SyncRunResult) -> Optional[str]:
        """Upsert one page of NVD items; returns the last stored id"""
        last_id = None
        for item in items:
            result.records_processed += 1
            try:
                record = parse_nvd_item(item)
            except ParseException as e:
                result.records_skipped += 1
                logger.warning(f"⚠️ Skipping malformed NVD item: {e}")
                continue
            self._count_outcome(result, self.record_store.upsert(record))
            last_id = record.id
        return last_id

    def _throttle(self):
        if self._last_request_at is not None:
            wait = self.request_delay - (self.clock() - self._last_request_at)
            if wait > 0:
                self.sleep(wait)
        self._last_request_at = self.clock()

    def _budget_exhausted(self, result: SyncRunResult) -> bool:
        return result.requests_made >= self.max_requests

    @staticmethod
    def _count_outcome(result: SyncRunResult, outcome: UpsertOutcome):
        if outcome == UpsertOutcome.INSERTED:
            result.records_added += 1
        elif outcome == UpsertOutcome.UPDATED:
            result.records_updated += 1
        else:
            result.records_skipped += 1

    @staticmethod
    def _record_failure(result: SyncRunResult, batch: BatchResult):
        message = f"{batch.source_name or 'source'} batch failed ({batch.status.value}): {batch.error}"
        logger.error(f"❌ {message}")
        result.errors.append(message)
        result.success = False

    @staticmethod
    def _log_summary(result: SyncRunResult):
        marker = "✅" if result.success else "❌"
        logger.info(
            f"{marker} {result.stream} sync finished: status={result.status.value} "
            f"processed={result.records_processed} added={result.records_added} "
            f"updated={result.records_updated} skipped={result.records_skipped} "
            f"failed={result.records_failed} requests={result.requests_made}"
        )
