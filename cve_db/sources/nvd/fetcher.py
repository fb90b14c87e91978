from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from cve_db.sources.base.base_fetcher import BaseFetcher
from cve_db.sources.base.results import BatchResult, FetchStatus

NVD_API_BASE_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"
# NVD caps resultsPerPage at 2000
MAX_RESULTS_PER_PAGE = 2000
# NVD rejects pubStartDate/pubEndDate ranges longer than 120 days
MAX_RANGE_DAYS = 120
NVD_DATE_FORMAT = '%Y-%m-%dT%H:%M:%S.000'


def format_nvd_date(value: datetime) -> str:
    return value.strftime(NVD_DATE_FORMAT)


def date_window(start: datetime, end: datetime) -> Dict[str, str]:
    """pubStartDate/pubEndDate filter for one publication window"""
    return {
        'pubStartDate': format_nvd_date(start),
        'pubEndDate': format_nvd_date(end),
    }


def year_windows(year: int) -> List[Dict[str, str]]:
    """Split a calendar year into quarter windows that fit the NVD range limit"""
    windows = []
    for start_month in (1, 4, 7, 10):
        start = datetime(year, start_month, 1)
        if start_month == 10:
            next_start = datetime(year + 1, 1, 1)
        else:
            next_start = datetime(year, start_month + 3, 1)
        end = next_start - timedelta(milliseconds=1)
        windows.append({
            'pubStartDate': format_nvd_date(start),
            'pubEndDate': end.strftime('%Y-%m-%dT%H:%M:%S.999'),
        })
    return windows


class NVDFetcher(BaseFetcher):
    """NVD CVE API 2.0 client (date-range + offset pagination, single-id lookup)"""

    def __init__(self, config: Dict[str, Any], **kwargs):
        super().__init__('nvd', config, **kwargs)
        self.results_per_page = min(config.get('results_per_page', MAX_RESULTS_PER_PAGE), MAX_RESULTS_PER_PAGE)

    def get_required_config_fields(self) -> List[str]:
        return ['base_url']

    def _get_auth_headers(self) -> Dict[str, str]:
        return {'apiKey': self.api_key}

    def fetch_batch(self, filter_params: Dict[str, Any], page_cursor: Optional[int] = None) -> BatchResult:
        """Fetch one page of CVEs published inside the given window"""
        start_index = page_cursor or 0
        params = dict(filter_params)
        params['resultsPerPage'] = self.results_per_page
        params['startIndex'] = start_index

        self.logger.info(f"📥 Fetching NVD page startIndex={start_index} "
                         f"({params.get('pubStartDate')} → {params.get('pubEndDate')})")
        result = self._make_request(self.base_url, params)

        if result.status == FetchStatus.NOT_FOUND:
            # NVD answers 404 for parameter combinations it rejects
            return BatchResult(FetchStatus.FATAL, error="NVD rejected query parameters (HTTP 404)",
                               source_name=self.source_name, status_code=404)
        if not result.ok:
            return BatchResult.from_failure(result, self.source_name)

        data = result.data
        vulnerabilities = data.get('vulnerabilities', [])
        if not isinstance(vulnerabilities, list):
            return BatchResult(FetchStatus.TRANSIENT_ERROR, error="'vulnerabilities' is not a list",
                               source_name=self.source_name)
        try:
            total_results = int(data.get('totalResults', 0))
        except (TypeError, ValueError):
            total_results = len(vulnerabilities)

        next_index = start_index + len(vulnerabilities)
        next_cursor = next_index if vulnerabilities and next_index < total_results else None

        return BatchResult(
            status=FetchStatus.OK,
            items=vulnerabilities,
            next_cursor=next_cursor,
            total_available=total_results,
            source_name=self.source_name,
        )

    def fetch_single(self, cve_id: str) -> BatchResult:
        """Look up one CVE by id; NOT_FOUND when NVD has no such record"""
        result = self._make_request(self.base_url, {'cveId': cve_id})
        if result.status == FetchStatus.NOT_FOUND:
            return BatchResult(FetchStatus.NOT_FOUND, source_name=self.source_name)
        if not result.ok:
            return BatchResult.from_failure(result, self.source_name)

        vulnerabilities = result.data.get('vulnerabilities') or []
        if not isinstance(vulnerabilities, list) or not vulnerabilities:
            return BatchResult(FetchStatus.NOT_FOUND, source_name=self.source_name)
        return BatchResult(FetchStatus.OK, items=vulnerabilities[:1], total_available=1,
                           source_name=self.source_name)


def recent_window(now: datetime, days_back: int = 30) -> Dict[str, str]:
    """Publication window for the last `days_back` days ending at `now`"""
    return date_window(now - timedelta(days=min(days_back, MAX_RANGE_DAYS)), now)
