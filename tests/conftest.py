"""Shared fixtures for the CVE sync tests."""

import pytest

from cve_db.db.progress_tracker import ProgressTracker
from cve_db.db.record_store import RecordStore
from fakes import FIXED_NOW, FakeClock, make_settings


@pytest.fixture
def settings(tmp_path):
    return make_settings(DATABASE_PATH=tmp_path / "cve_sync.sqlite")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    record_store = RecordStore(":memory:")
    record_store.connect()
    yield record_store
    record_store.close()


@pytest.fixture
def tracker():
    progress_tracker = ProgressTracker(":memory:", now=lambda: FIXED_NOW)
    progress_tracker.connect()
    yield progress_tracker
    progress_tracker.close()
