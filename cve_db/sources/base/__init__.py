"""
Base infrastructure shared by the NVD and CISA clients

Key Components:
- BaseFetcher: HTTP session, retry loop and rate-limit backoff
- FetchStatus / FetchResult / BatchResult: explicit request outcomes
- Exceptions: CveSyncException hierarchy
"""

from .base_fetcher import BaseFetcher
from .exceptions import (
    ConfigException,
    FetchException,
    ParseException,
    StoreException,
    CveSyncException,
)
from .results import BatchResult, FetchResult, FetchStatus

__all__ = [
    'BaseFetcher',
    'BatchResult',
    'FetchResult',
    'FetchStatus',
    'CveSyncException',
    'FetchException',
    'ParseException',
    'ConfigException',
    'StoreException',
]
