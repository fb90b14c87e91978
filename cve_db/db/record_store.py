"""
Record Store

One row per CVE id in the `cves` table. Writes are keyed point writes,
each in its own transaction, so a crash mid-write never leaves a torn row.

Upsert rules:
- unknown id                                  -> inserted
- same or older lastModified                  -> skipped (no write)
- newer lastModified                          -> updated (full replace)
- stored record synthesized from CISA only    -> updated by any NVD record
Stored KEV data survives an update that carries none.
"""

import json
import logging
import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cve_db.db.connection import SQLiteStore
from cve_db.models import UpsertOutcome, VulnerabilityRecord, parse_timestamp
from cve_db.sources.base.exceptions import StoreException

logger = logging.getLogger(__name__)

SCHEMA_QUERIES = [
    """
    CREATE TABLE IF NOT EXISTS cves (
        cve_id TEXT PRIMARY KEY,
        cve_year INTEGER,
        published_at TEXT,
        last_modified_at TEXT,
        descriptions TEXT NOT NULL,
        source TEXT NOT NULL,
        cisa_data TEXT,
        is_exploited INTEGER NOT NULL DEFAULT 0,
        vendor TEXT,
        product TEXT,
        raw TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_cves_year ON cves (cve_year)",
    "CREATE INDEX IF NOT EXISTS idx_cves_vendor ON cves (vendor)",
    "CREATE INDEX IF NOT EXISTS idx_cves_exploited ON cves (is_exploited)",
    "CREATE INDEX IF NOT EXISTS idx_cves_published ON cves (published_at)",
]

_ORDER_BY_ID = "ORDER BY cve_year, CAST(substr(cve_id, 10) AS INTEGER)"


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(',', ':'))


class RecordStore(SQLiteStore):
    """SQLite-backed store of VulnerabilityRecord rows"""

    store_name = "record_store"
    schema_queries = SCHEMA_QUERIES

    def upsert(self, record: VulnerabilityRecord) -> UpsertOutcome:
        try:
            row = self._fetch_row(record.id)
            if row is None:
                self._write(record, insert=True)
                return UpsertOutcome.INSERTED

            stored = self._row_to_record(row)
            if not self._should_replace(stored, record):
                return UpsertOutcome.SKIPPED

            if record.cisa_data is None and stored.cisa_data:
                record = replace(record, cisa_data=stored.cisa_data)
            self._write(record, insert=False)
            return UpsertOutcome.UPDATED
        except sqlite3.Error as e:
            raise StoreException(f"Upsert failed for {record.id}: {e}", source_name=self.store_name,
                                 record_id=record.id)

    def attach_cisa_data(self, cve_id: str, cisa_data: Dict[str, Any]) -> Optional[UpsertOutcome]:
        """
        Add KEV data to an existing record without touching descriptions/raw

        Returns None when the id is not stored.
        """
        try:
            row = self._fetch_row(cve_id)
            if row is None:
                return None
            if row['cisa_data'] and _dumps(json.loads(row['cisa_data'])) == _dumps(cisa_data):
                return UpsertOutcome.SKIPPED

            merged = replace(self._row_to_record(row), cisa_data=dict(cisa_data))
            with self.db:
                self.db.execute(
                    """UPDATE cves SET cisa_data = ?, is_exploited = 1, vendor = ?, product = ?, updated_at = ?
                       WHERE cve_id = ?""",
                    (_dumps(merged.cisa_data), merged.vendor, merged.product, self._now(), cve_id),
                )
            return UpsertOutcome.UPDATED
        except sqlite3.Error as e:
            raise StoreException(f"Attaching KEV data failed for {cve_id}: {e}", source_name=self.store_name,
                                 record_id=cve_id)

    def get(self, cve_id: str) -> Optional[VulnerabilityRecord]:
        row = self._fetch_row(cve_id.strip().upper())
        return self._row_to_record(row) if row else None

    def query_by_year(self, year: int) -> List[VulnerabilityRecord]:
        """Records whose id carries `year` (CVE-YYYY-NNNN), whatever their publish date"""
        return self._query(f"SELECT * FROM cves WHERE cve_year = ? {_ORDER_BY_ID}", (int(year),))

    def query_by_vendor(self, vendor: str) -> List[VulnerabilityRecord]:
        return self._query(f"SELECT * FROM cves WHERE vendor = ? {_ORDER_BY_ID}", (vendor.lower(),))

    def query_exploited(self) -> List[VulnerabilityRecord]:
        return self._query(f"SELECT * FROM cves WHERE is_exploited = 1 {_ORDER_BY_ID}")

    def count(self) -> int:
        return self.db.execute("SELECT COUNT(*) FROM cves").fetchone()[0]

    def stats(self) -> Dict[str, Any]:
        row = self.db.execute(
            """SELECT COUNT(*) AS total_count,
                      MIN(published_at) AS oldest_published_at,
                      MAX(published_at) AS newest_published_at,
                      COALESCE(SUM(is_exploited), 0) AS cisa_exploited
               FROM cves"""
        ).fetchone()
        return {
            'total_count': row['total_count'],
            'oldest_published_at': row['oldest_published_at'],
            'newest_published_at': row['newest_published_at'],
            'cisa_exploited': row['cisa_exploited'],
        }

    @staticmethod
    def _should_replace(stored: VulnerabilityRecord, incoming: VulnerabilityRecord) -> bool:
        if stored.is_synthesized and not incoming.is_synthesized:
            return True
        incoming_ts = parse_timestamp(incoming.last_modified_at)
        stored_ts = parse_timestamp(stored.last_modified_at)
        if incoming_ts is None:
            return False
        if stored_ts is None:
            return True
        return incoming_ts > stored_ts

    def _fetch_row(self, cve_id: str) -> Optional[sqlite3.Row]:
        return self.db.execute("SELECT * FROM cves WHERE cve_id = ?", (cve_id,)).fetchone()

    def _query(self, sql: str, params: tuple = ()) -> List[VulnerabilityRecord]:
        return [self._row_to_record(row) for row in self.db.execute(sql, params).fetchall()]

    def _write(self, record: VulnerabilityRecord, insert: bool):
        now = self._now()
        values = (
            record.year,
            record.published_at,
            record.last_modified_at,
            _dumps(record.descriptions),
            record.source,
            _dumps(record.cisa_data) if record.cisa_data else None,
            1 if record.is_exploited else 0,
            record.vendor,
            record.product,
            _dumps(record.raw),
        )
        with self.db:
            if insert:
                self.db.execute(
                    """INSERT INTO cves (cve_year, published_at, last_modified_at, descriptions, source,
                                         cisa_data, is_exploited, vendor, product, raw,
                                         cve_id, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    values + (record.id, now, now),
                )
            else:
                self.db.execute(
                    """UPDATE cves SET cve_year = ?, published_at = ?, last_modified_at = ?, descriptions = ?,
                                       source = ?, cisa_data = ?, is_exploited = ?, vendor = ?, product = ?,
                                       raw = ?, updated_at = ?
                       WHERE cve_id = ?""",
                    values + (now, record.id),
                )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> VulnerabilityRecord:
        return VulnerabilityRecord(
            id=row['cve_id'],
            published_at=row['published_at'],
            last_modified_at=row['last_modified_at'],
            descriptions=json.loads(row['descriptions']),
            source=row['source'],
            cisa_data=json.loads(row['cisa_data']) if row['cisa_data'] else None,
            raw=json.loads(row['raw']),
        )

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
