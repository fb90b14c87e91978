from typing import Any, Dict, List, Optional

from cve_db.sources.base.base_fetcher import BaseFetcher
from cve_db.sources.base.results import BatchResult, FetchStatus

CISA_KEV_URL = "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"


class CISAFetcher(BaseFetcher):
    """CISA KEV catalog client; the feed is one unpaginated document"""

    def __init__(self, config: Dict[str, Any], **kwargs):
        super().__init__('cisa', config, **kwargs)

    def get_required_config_fields(self) -> List[str]:
        return ['base_url']

    def _get_auth_headers(self) -> Dict[str, str]:
        return {}

    def fetch_batch(self, filter_params: Dict[str, Any] = None, page_cursor: Optional[int] = None) -> BatchResult:
        """Fetch the whole catalog; filters and cursor are ignored"""
        self.logger.info("📥 Downloading CISA Known Exploited Vulnerabilities catalog")
        result = self._make_request(self.base_url)
        if result.status == FetchStatus.NOT_FOUND:
            return BatchResult(FetchStatus.FATAL, error="KEV feed not found (HTTP 404)",
                               source_name=self.source_name, status_code=404)
        if not result.ok:
            return BatchResult.from_failure(result, self.source_name)

        vulnerabilities = result.data.get('vulnerabilities')
        if not isinstance(vulnerabilities, list):
            return BatchResult(FetchStatus.TRANSIENT_ERROR, error="KEV document has no 'vulnerabilities' list",
                               source_name=self.source_name)

        self.logger.info(f"✅ KEV catalog {result.data.get('catalogVersion', '?')} "
                         f"with {len(vulnerabilities)} entries")
        return BatchResult(FetchStatus.OK, items=vulnerabilities, next_cursor=None,
                           total_available=len(vulnerabilities), source_name=self.source_name)
