"""
Sync Progress Tracker

Resume state per sync stream in the `sync_progress` table. `update` is the
only mutator used by the sync logic and always overwrites the row; `reset`
is reserved for operators forcing a stream to start over.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Union

from cve_db.db.connection import SQLiteStore
from cve_db.models import SyncProgress, SyncStatus
from cve_db.sources.base.exceptions import StoreException

logger = logging.getLogger(__name__)

SCHEMA_QUERIES = [
    """
    CREATE TABLE IF NOT EXISTS sync_progress (
        stream_name TEXT PRIMARY KEY,
        last_cursor TEXT NOT NULL DEFAULT '',
        total_processed INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
]


class ProgressTracker(SQLiteStore):
    """SQLite-backed SyncProgress rows keyed by stream name"""

    store_name = "progress_tracker"
    schema_queries = SCHEMA_QUERIES

    def __init__(self, db_path, now: Callable[[], datetime] = None):
        super().__init__(db_path)
        self.now = now or (lambda: datetime.now(timezone.utc))

    def get(self, stream_name: str) -> Optional[SyncProgress]:
        row = self.db.execute("SELECT * FROM sync_progress WHERE stream_name = ?", (stream_name,)).fetchone()
        return self._row_to_progress(row) if row else None

    def update(self, stream_name: str, cursor: str, total_processed: int,
               status: Union[SyncStatus, str] = SyncStatus.IN_PROGRESS) -> SyncProgress:
        status = SyncStatus(status)
        progress = SyncProgress(
            stream_name=stream_name,
            cursor=cursor or "",
            total_processed=int(total_processed),
            status=status,
            updated_at=self.now(),
        )
        try:
            with self.db:
                self.db.execute(
                    """INSERT INTO sync_progress (stream_name, last_cursor, total_processed, status, updated_at)
                       VALUES (?, ?, ?, ?, ?)
                       ON CONFLICT(stream_name) DO UPDATE SET
                           last_cursor = excluded.last_cursor,
                           total_processed = excluded.total_processed,
                           status = excluded.status,
                           updated_at = excluded.updated_at""",
                    (progress.stream_name, progress.cursor, progress.total_processed,
                     progress.status.value, progress.updated_at.isoformat()),
                )
        except sqlite3.Error as e:
            raise StoreException(f"Progress update failed for {stream_name}: {e}", source_name=self.store_name)
        return progress

    def all(self) -> Dict[str, SyncProgress]:
        rows = self.db.execute("SELECT * FROM sync_progress ORDER BY stream_name").fetchall()
        return {row['stream_name']: self._row_to_progress(row) for row in rows}

    def reset(self, stream_name: str) -> bool:
        """Operator action: forget a stream's progress so its next run starts fresh"""
        with self.db:
            deleted = self.db.execute("DELETE FROM sync_progress WHERE stream_name = ?", (stream_name,)).rowcount
        if deleted:
            logger.warning(f"🔧 Progress for stream '{stream_name}' cleared")
        return bool(deleted)

    @staticmethod
    def _row_to_progress(row: sqlite3.Row) -> SyncProgress:
        updated_at = datetime.fromisoformat(row['updated_at'])
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return SyncProgress(
            stream_name=row['stream_name'],
            cursor=row['last_cursor'],
            total_processed=row['total_processed'],
            status=SyncStatus(row['status']),
            updated_at=updated_at,
        )
