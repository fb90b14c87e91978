"""
Fetch result types

Fetchers never let upstream failures escape as exceptions. Every logical
request ends in one of the FetchStatus values below and the orchestrator
decides what to do with it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import FetchException


class FetchStatus(Enum):
    """Outcome of a request after retries"""
    OK = "ok"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_ERROR = "transient_error"
    FATAL = "fatal"


@dataclass
class FetchResult:
    """Single HTTP request outcome, after the retry loop"""
    status: FetchStatus
    data: Optional[Dict[str, Any]] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK


@dataclass
class BatchResult:
    """One page of items from a source"""
    status: FetchStatus
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[int] = None
    total_available: int = 0
    error: Optional[str] = None
    source_name: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK

    @property
    def failed(self) -> bool:
        return self.status in (FetchStatus.RATE_LIMITED, FetchStatus.TRANSIENT_ERROR, FetchStatus.FATAL)

    @classmethod
    def from_failure(cls, result: FetchResult, source_name: str = None) -> "BatchResult":
        return cls(status=result.status, error=result.error, source_name=source_name,
                   status_code=result.status_code)

    def raise_for_status(self):
        """Escalate a failed batch to FetchException (used where a failure ends the run)"""
        if self.failed:
            raise FetchException(
                f"Batch fetch failed ({self.status.value}): {self.error}",
                source_name=self.source_name,
                fetch_status=self.status.value,
                status_code=self.status_code,
            )
