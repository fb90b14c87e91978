"""
Custom Exceptions for the CVE Sync Service

Parsers, stores and configuration code raise these. Fetchers report upstream
failures as FetchStatus values instead (see results.py); FetchException only
appears where a caller escalates a failed batch.

Exception Hierarchy:
- CveSyncException (base)
  ├── FetchException (failed batch escalated by the caller)
  ├── ParseException (upstream record of the wrong shape)
  ├── ConfigException (bad configuration or sync type)
  └── StoreException (SQLite read/write failure)
"""

from typing import Optional


class CveSyncException(Exception):
    """Base exception for all CVE sync operations"""

    def __init__(self, message: str, source_name: Optional[str] = None, **details):
        super().__init__(message)
        self.source_name = source_name
        self.details = {key: value for key, value in details.items() if value is not None}

    def __str__(self):
        message = super().__str__()
        return f"[{self.source_name}] {message}" if self.source_name else message


class FetchException(CveSyncException):
    """A batch that ended in a failure status, raised via BatchResult.raise_for_status"""

    def __init__(self, message: str, source_name: Optional[str] = None,
                 fetch_status: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, source_name, fetch_status=fetch_status, status_code=status_code)
        self.fetch_status = fetch_status
        self.status_code = status_code


class ParseException(CveSyncException):
    def __init__(self, message: str, source_name: Optional[str] = None, raw_data_sample: Optional[str] = None):
        super().__init__(message, source_name, raw_data_sample=raw_data_sample)
        self.raw_data_sample = raw_data_sample


class ConfigException(CveSyncException):
    def __init__(self, message: str, source_name: Optional[str] = None, config_key: Optional[str] = None):
        super().__init__(message, source_name, config_key=config_key)
        self.config_key = config_key


class StoreException(CveSyncException):
    def __init__(self, message: str, source_name: Optional[str] = None, record_id: Optional[str] = None):
        super().__init__(message, source_name, record_id=record_id)
        self.record_id = record_id
