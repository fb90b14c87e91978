"""
Base Fetcher for CVE Sync Sources

Abstract base class that the NVD and CISA fetchers inherit from.
Provides the shared request/retry loop and enforces a consistent interface.
"""

import abc
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .exceptions import ConfigException
from .results import BatchResult, FetchResult, FetchStatus

# Status codes that will not change on retry
FATAL_STATUS_CODES = (400, 401, 403)


class BaseFetcher(abc.ABC):
    """Abstract base class for all vulnerability source fetchers"""

    def __init__(self, source_name: str, config: Dict[str, Any],
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize fetcher with source configuration

        Args:
            source_name: Name of the vulnerability source
            config: Source configuration dict (see Settings.source_config)
            session: Optional pre-built requests session (tests inject a mock)
            sleep: Blocking sleep used between retries
        """
        self.source_name = source_name
        self.config = config
        self.logger = logging.getLogger(f"fetcher.{source_name}")
        self.sleep = sleep

        self.validate_config()

        # Common configuration
        self.base_url = config.get('base_url', '')
        self.api_key = config.get('api_key')
        self.timeout = config.get('timeout', 30)
        self.max_retries = max(1, config.get('max_retries', 3))
        self.retry_delay = config.get('retry_delay', 2)
        self.rate_limit_retries = max(1, config.get('rate_limit_retries', 3))
        self.rate_limit_delay = config.get('rate_limit_delay', 60)

        # Session for connection pooling
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': config.get('user_agent', 'cve-sync/1.0'),
            'Accept': 'application/json',
        })
        if self.api_key:
            self.session.headers.update(self._get_auth_headers())

    @abc.abstractmethod
    def fetch_batch(self, filter_params: Dict[str, Any], page_cursor: Optional[int] = None) -> BatchResult:
        """
        Fetch one page of vulnerabilities from the source

        Args:
            filter_params: Source-specific filters (date range for NVD)
            page_cursor: Offset of the page to fetch

        Returns:
            BatchResult with items, next cursor and total available
        """
        pass

    @abc.abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Return authentication headers for API requests"""
        pass

    @abc.abstractmethod
    def get_required_config_fields(self) -> List[str]:
        """Return list of required configuration fields for this source"""
        pass

    def _make_request(self, url: str, params: Dict[str, Any] = None) -> FetchResult:
        """
        Make HTTP request with retry logic

        Transient failures (network errors, unexpected status codes, malformed
        JSON) get `max_retries` attempts spaced by `retry_delay`. HTTP 429 has
        its own budget of `rate_limit_retries` attempts spaced by the much
        longer `rate_limit_delay`, and does not use up transient attempts.

        Args:
            url: URL to request
            params: Query parameters

        Returns:
            FetchResult; never raises for upstream failures
        """
        transient_failures = 0
        rate_limit_hits = 0
        attempts = 0

        while True:
            attempts += 1
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
            except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                    requests.exceptions.InvalidSchema) as e:
                self.logger.error(f"❌ Invalid request URL {url}: {e}")
                return FetchResult(FetchStatus.FATAL, error=str(e), attempts=attempts)
            except requests.RequestException as e:
                error = f"Network error: {e}"
            else:
                if response.status_code == 200:
                    try:
                        data = response.json()
                    except ValueError as e:
                        error = f"JSON decode error: {e}"
                    else:
                        if isinstance(data, dict):
                            return FetchResult(FetchStatus.OK, data=data, status_code=200, attempts=attempts)
                        error = f"Unexpected payload type: {type(data).__name__}"
                elif response.status_code == 429:
                    rate_limit_hits += 1
                    if rate_limit_hits >= self.rate_limit_retries:
                        self.logger.error(f"❌ Still rate limited after {rate_limit_hits} attempts, giving up")
                        return FetchResult(FetchStatus.RATE_LIMITED, status_code=429,
                                           error="Rate limit exceeded", attempts=attempts)
                    self.logger.warning(f"⏳ Rate limited (attempt {attempts}), waiting {self.rate_limit_delay}s")
                    self.sleep(self.rate_limit_delay)
                    continue
                elif response.status_code == 404:
                    return FetchResult(FetchStatus.NOT_FOUND, status_code=404, attempts=attempts)
                elif response.status_code in FATAL_STATUS_CODES:
                    self.logger.error(f"❌ HTTP {response.status_code} from {url}, not retrying")
                    return FetchResult(FetchStatus.FATAL, status_code=response.status_code,
                                       error=f"HTTP {response.status_code}", attempts=attempts)
                else:
                    error = f"HTTP error {response.status_code}"

            transient_failures += 1
            if transient_failures >= self.max_retries:
                self.logger.error(f"❌ Request failed after {transient_failures} attempts: {error}")
                return FetchResult(FetchStatus.TRANSIENT_ERROR, error=error, attempts=attempts)

            self.logger.warning(f"Request attempt {transient_failures} failed: {error}")
            self.sleep(self.retry_delay)

    def validate_config(self) -> bool:
        """
        Validate that required configuration is present

        Raises:
            ConfigException: If configuration is invalid
        """
        for field in self.get_required_config_fields():
            if not self.config.get(field):
                raise ConfigException(f"Missing required configuration field: {field}",
                                      source_name=self.source_name, config_key=field)
        return True

    def cleanup(self):
        """Clean up resources (close sessions, etc.)"""
        if hasattr(self, 'session'):
            self.session.close()
