"""Tests for the shared request/retry loop."""

from unittest.mock import Mock

import pytest
import requests

from cve_db.sources.base.exceptions import ConfigException
from cve_db.sources.base.results import FetchStatus
from cve_db.sources.cisa.fetcher import CISAFetcher
from cve_db.sources.nvd.fetcher import NVDFetcher
from fakes import http_response

URL = "https://nvd.example/rest/json/cves/2.0"


def make_fetcher(responses, **config_overrides):
    session = Mock()
    session.headers = {}
    if isinstance(responses, list):
        session.get.side_effect = responses
    else:
        session.get.return_value = responses
    sleeps = []
    config = {
        "base_url": URL,
        "max_retries": 3,
        "retry_delay": 2,
        "rate_limit_retries": 3,
        "rate_limit_delay": 60,
        **config_overrides,
    }
    return NVDFetcher(config, session=session, sleep=sleeps.append), session, sleeps


class TestRetryPolicy:
    def test_success_first_attempt(self):
        fetcher, session, sleeps = make_fetcher(http_response(200, {"totalResults": 0}))
        result = fetcher._make_request(URL)
        assert result.ok
        assert result.data == {"totalResults": 0}
        assert result.attempts == 1
        assert sleeps == []

    def test_server_error_stops_after_three_attempts(self):
        fetcher, session, sleeps = make_fetcher(http_response(500))
        result = fetcher._make_request(URL)
        assert result.status == FetchStatus.TRANSIENT_ERROR
        assert session.get.call_count == 3
        assert sleeps == [2, 2]

    def test_server_error_then_success(self):
        fetcher, session, sleeps = make_fetcher([http_response(503), http_response(200, {"ok": True})])
        result = fetcher._make_request(URL)
        assert result.ok
        assert result.attempts == 2
        assert sleeps == [2]

    def test_rate_limit_waits_long_delay(self):
        fetcher, session, sleeps = make_fetcher([http_response(429), http_response(200, {"ok": True})])
        result = fetcher._make_request(URL)
        assert result.ok
        assert sleeps == [60]

    def test_rate_limit_budget_exhausted(self):
        fetcher, session, sleeps = make_fetcher(http_response(429))
        result = fetcher._make_request(URL)
        assert result.status == FetchStatus.RATE_LIMITED
        assert session.get.call_count == 3
        assert sleeps == [60, 60]

    def test_rate_limit_does_not_consume_transient_attempts(self):
        responses = [http_response(429), http_response(500), http_response(500), http_response(200, {"ok": True})]
        fetcher, session, sleeps = make_fetcher(responses)
        result = fetcher._make_request(URL)
        assert result.ok
        assert sleeps == [60, 2, 2]

    @pytest.mark.parametrize("status_code", [400, 401, 403])
    def test_client_errors_are_fatal_without_retry(self, status_code):
        fetcher, session, sleeps = make_fetcher(http_response(status_code))
        result = fetcher._make_request(URL)
        assert result.status == FetchStatus.FATAL
        assert result.status_code == status_code
        assert session.get.call_count == 1
        assert sleeps == []

    def test_not_found(self):
        fetcher, session, sleeps = make_fetcher(http_response(404))
        result = fetcher._make_request(URL)
        assert result.status == FetchStatus.NOT_FOUND
        assert session.get.call_count == 1

    def test_malformed_json_is_transient(self):
        fetcher, session, sleeps = make_fetcher(http_response(200, bad_json=True))
        result = fetcher._make_request(URL)
        assert result.status == FetchStatus.TRANSIENT_ERROR
        assert "JSON decode error" in result.error
        assert session.get.call_count == 3

    def test_non_object_payload_is_transient(self):
        fetcher, session, sleeps = make_fetcher(http_response(200, ["not", "an", "object"]))
        result = fetcher._make_request(URL)
        assert result.status == FetchStatus.TRANSIENT_ERROR

    def test_network_error_is_transient(self):
        fetcher, session, sleeps = make_fetcher(None)
        session.get.side_effect = requests.ConnectionError("connection reset")
        result = fetcher._make_request(URL)
        assert result.status == FetchStatus.TRANSIENT_ERROR
        assert "Network error" in result.error
        assert sleeps == [2, 2]

    def test_invalid_url_is_fatal(self):
        fetcher, session, sleeps = make_fetcher(None)
        session.get.side_effect = requests.exceptions.MissingSchema("No scheme supplied")
        result = fetcher._make_request("nvd.example/no-scheme")
        assert result.status == FetchStatus.FATAL
        assert session.get.call_count == 1


class TestFetcherConfig:
    def test_missing_base_url(self):
        with pytest.raises(ConfigException) as exc_info:
            CISAFetcher({"base_url": ""}, session=Mock(headers={}))
        assert exc_info.value.config_key == "base_url"
        assert "[cisa]" in str(exc_info.value)

    def test_api_key_header(self):
        fetcher, session, _ = make_fetcher(http_response(200), api_key="secret-key")
        assert session.headers["apiKey"] == "secret-key"
        assert session.headers["Accept"] == "application/json"

    def test_no_api_key_header_by_default(self):
        fetcher, session, _ = make_fetcher(http_response(200))
        assert "apiKey" not in session.headers

    def test_cleanup_closes_session(self):
        fetcher, session, _ = make_fetcher(http_response(200))
        fetcher.cleanup()
        session.close.assert_called_once()
