"""
Source client facade

One entry point for the orchestrator: `fetch_batch(source, filter_params,
page_cursor)` dispatches to the fetcher registered for `source`, and
`fetch_single(cve_id)` always goes to NVD.
"""

import time
from typing import Any, Callable, Dict, Optional

from cve_db.config.settings import Settings
from cve_db.sources.base.base_fetcher import BaseFetcher
from cve_db.sources.base.exceptions import ConfigException
from cve_db.sources.base.results import BatchResult
from cve_db.sources.cisa.fetcher import CISAFetcher
from cve_db.sources.nvd.fetcher import NVDFetcher


class SourceClient:
    """Routes batch and single-record fetches to the per-source fetchers"""

    def __init__(self, fetchers: Dict[str, BaseFetcher]):
        if 'nvd' not in fetchers:
            raise ConfigException("An 'nvd' fetcher is required", config_key='nvd')
        self.fetchers = fetchers

    @classmethod
    def from_settings(cls, settings: Settings, sleep: Callable[[float], None] = time.sleep) -> "SourceClient":
        return cls({
            'nvd': NVDFetcher(settings.source_config('nvd'), sleep=sleep),
            'cisa': CISAFetcher(settings.source_config('cisa'), sleep=sleep),
        })

    def fetch_batch(self, source: str, filter_params: Optional[Dict[str, Any]] = None,
                    page_cursor: Optional[int] = None) -> BatchResult:
        fetcher = self.fetchers.get(source)
        if fetcher is None:
            raise ConfigException(f"Unknown source: {source}", config_key=source)
        return fetcher.fetch_batch(filter_params or {}, page_cursor)

    def fetch_single(self, cve_id: str) -> BatchResult:
        return self.fetchers['nvd'].fetch_single(cve_id)

    def close(self):
        for fetcher in self.fetchers.values():
            fetcher.cleanup()
