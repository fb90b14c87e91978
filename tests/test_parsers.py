"""Tests for NVD/KEV parsing and the record model."""

import pytest

from cve_db.models import SOURCE_CISA, SOURCE_NVD, VulnerabilityRecord, cve_year, parse_timestamp
from cve_db.sources.base.exceptions import ParseException
from cve_db.sources.cisa.parser import build_cisa_record, kev_cve_id
from cve_db.sources.nvd.parser import parse_nvd_item
from fakes import kev_entry, nvd_item


class TestNVDParser:
    def test_parse_item(self):
        record = parse_nvd_item(nvd_item("CVE-2021-44228", published="2021-12-10T10:15:09.143",
                                         last_modified="2024-04-03T17:15:03.000", description="Log4Shell"))
        assert record.id == "CVE-2021-44228"
        assert record.source == SOURCE_NVD
        assert record.published_at == "2021-12-10T10:15:09.143"
        assert record.last_modified_at == "2024-04-03T17:15:03.000"
        assert record.descriptions == [{"lang": "en", "value": "Log4Shell"}]
        assert record.raw["id"] == "CVE-2021-44228"
        assert record.cisa_data is None

    def test_id_is_normalised(self):
        item = nvd_item("cve-2024-1234")
        assert parse_nvd_item(item).id == "CVE-2024-1234"

    def test_last_modified_defaults_to_published(self):
        item = nvd_item("CVE-2024-1234")
        del item["cve"]["lastModified"]
        record = parse_nvd_item(item)
        assert record.last_modified_at == record.published_at

    def test_missing_cve_object(self):
        with pytest.raises(ParseException):
            parse_nvd_item({"foo": "bar"})

    def test_invalid_id(self):
        with pytest.raises(ParseException):
            parse_nvd_item({"cve": {"id": "GHSA-xxxx-yyyy"}})

    def test_attaches_cisa_data(self):
        entry = kev_entry("CVE-2024-1234")
        record = parse_nvd_item(nvd_item("CVE-2024-1234"), cisa_data=entry)
        assert record.cisa_data == entry
        assert record.is_exploited


class TestCISAParser:
    def test_build_record(self):
        entry = kev_entry("CVE-2023-4966", date_added="2023-10-18", name="Citrix Bleed")
        record = build_cisa_record(entry)
        assert record.id == "CVE-2023-4966"
        assert record.source == SOURCE_CISA
        assert record.published_at == "2023-10-18"
        assert record.descriptions == [{"lang": "en", "value": "Citrix Bleed"}]
        assert record.raw == {}
        assert record.cisa_data == entry
        assert record.is_synthesized

    def test_missing_name_gets_default_description(self):
        entry = kev_entry("CVE-2023-4966")
        del entry["vulnerabilityName"]
        assert build_cisa_record(entry).primary_description

    def test_missing_cve_id(self):
        with pytest.raises(ParseException):
            kev_cve_id({"vendorProject": "Acme"})

    def test_cve_id_normalised(self):
        assert kev_cve_id({"cveID": " cve-2023-4966 "}) == "CVE-2023-4966"


class TestRecordModel:
    def test_vendor_from_kev(self):
        record = build_cisa_record(kev_entry("CVE-2024-0001", vendor="Ivanti", product="Connect Secure"))
        assert record.vendor == "ivanti"
        assert record.product == "connect secure"

    def test_vendor_from_cpe(self):
        record = parse_nvd_item(nvd_item("CVE-2024-0001", vendor="apache", product="log4j"))
        assert record.vendor == "apache"
        assert record.product == "log4j"

    def test_no_vendor(self):
        assert parse_nvd_item(nvd_item("CVE-2024-0001")).vendor is None

    def test_year_from_id(self):
        assert VulnerabilityRecord(id="CVE-1999-0001").year == 1999
        assert cve_year("not-a-cve") is None

    def test_primary_description_prefers_english(self):
        record = VulnerabilityRecord(id="CVE-2024-0001", descriptions=[
            {"lang": "es", "value": "Vulnerabilidad"}, {"lang": "en", "value": "Vulnerability"}])
        assert record.primary_description == "Vulnerability"

    def test_parse_timestamp_variants(self):
        assert parse_timestamp("2024-01-01T00:00:00.000Z") == parse_timestamp("2024-01-01T00:00:00+00:00")
        assert parse_timestamp("2024-01-01").year == 2024
        assert parse_timestamp("") is None
        assert parse_timestamp("garbage") is None
