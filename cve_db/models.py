"""
Data models shared by the stores, parsers and the orchestrator
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

CVE_ID_PATTERN = re.compile(r'^CVE-(\d{4})-(\d{4,})$')

SOURCE_NVD = "NVD"
SOURCE_CISA = "CISA"
SOURCE_MITRE = "MITRE"


class SyncStatus(Enum):
    """Sync stream status"""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class UpsertOutcome(Enum):
    """What the record store did with an upsert"""
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an upstream timestamp; naive values are taken as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text[:10], '%Y-%m-%d')
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cve_year(cve_id: str) -> Optional[int]:
    match = CVE_ID_PATTERN.match(cve_id or '')
    return int(match.group(1)) if match else None


@dataclass
class VulnerabilityRecord:
    """One CVE as stored locally"""
    id: str
    published_at: Optional[str] = None
    last_modified_at: Optional[str] = None
    descriptions: List[Dict[str, str]] = field(default_factory=list)
    source: str = SOURCE_NVD
    cisa_data: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def year(self) -> Optional[int]:
        return cve_year(self.id)

    @property
    def is_exploited(self) -> bool:
        return bool(self.cisa_data)

    @property
    def is_synthesized(self) -> bool:
        """True for records built from a KEV entry with no NVD payload"""
        return self.source == SOURCE_CISA and not self.raw

    @property
    def primary_description(self) -> str:
        for desc in self.descriptions:
            if desc.get('lang') == 'en':
                return desc.get('value', '')
        return self.descriptions[0].get('value', '') if self.descriptions else ''

    @property
    def vendor(self) -> Optional[str]:
        vendor, _ = self._vendor_product()
        return vendor

    @property
    def product(self) -> Optional[str]:
        _, product = self._vendor_product()
        return product

    def _vendor_product(self):
        # KEV names the vendor explicitly; otherwise use the first vulnerable CPE
        if self.cisa_data and self.cisa_data.get('vendorProject'):
            return self.cisa_data['vendorProject'].lower(), (self.cisa_data.get('product') or '').lower() or None
        for config in self.raw.get('configurations', []) or []:
            for node in config.get('nodes', []) or []:
                for cpe_match in node.get('cpeMatch', []) or []:
                    if not cpe_match.get('vulnerable', False):
                        continue
                    parts = cpe_match.get('criteria', '').split(':')
                    if len(parts) > 4 and parts[3] not in ('', '*'):
                        return parts[3].lower(), parts[4].lower() if parts[4] not in ('', '*') else None
        return None, None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'published_at': self.published_at,
            'last_modified_at': self.last_modified_at,
            'descriptions': self.descriptions,
            'source': self.source,
            'cisa_data': self.cisa_data,
            'raw': self.raw,
        }


@dataclass
class SyncProgress:
    """Persisted resume state for one sync stream"""
    stream_name: str
    cursor: str = ""
    total_processed: int = 0
    status: SyncStatus = SyncStatus.NOT_STARTED
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stream_name': self.stream_name,
            'cursor': self.cursor,
            'total_processed': self.total_processed,
            'status': self.status.value,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class SyncRunResult:
    """Result of one sync run"""
    stream: str
    start_time: datetime
    end_time: Optional[datetime] = None
    records_processed: int = 0
    records_added: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    requests_made: int = 0
    status: SyncStatus = SyncStatus.IN_PROGRESS
    cursor: str = ""
    errors: List[str] = field(default_factory=list)
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stream': self.stream,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'records_processed': self.records_processed,
            'records_added': self.records_added,
            'records_updated': self.records_updated,
            'records_skipped': self.records_skipped,
            'records_failed': self.records_failed,
            'requests_made': self.requests_made,
            'status': self.status.value,
            'cursor': self.cursor,
            'errors': self.errors,
            'success': self.success,
        }
