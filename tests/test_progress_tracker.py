"""Tests for the sync progress tracker."""

from datetime import datetime, timezone

import pytest

from cve_db.db.progress_tracker import ProgressTracker
from cve_db.models import SyncStatus
from fakes import FIXED_NOW


class TestProgressTracker:
    def test_missing_stream(self, tracker):
        assert tracker.get("full") is None

    def test_update_and_get(self, tracker):
        tracker.update("full", "year_2020", 1500, SyncStatus.IN_PROGRESS)
        progress = tracker.get("full")
        assert progress.cursor == "year_2020"
        assert progress.total_processed == 1500
        assert progress.status == SyncStatus.IN_PROGRESS
        assert progress.updated_at == FIXED_NOW

    def test_update_overwrites(self, tracker):
        tracker.update("recent", "CVE-2024-0001", 10)
        tracker.update("recent", "CVE-2024-0050", 60, "completed")
        progress = tracker.get("recent")
        assert progress.cursor == "CVE-2024-0050"
        assert progress.total_processed == 60
        assert progress.status == SyncStatus.COMPLETED

    def test_invalid_status(self, tracker):
        with pytest.raises(ValueError):
            tracker.update("recent", "", 0, "paused")

    def test_all(self, tracker):
        tracker.update("recent", "CVE-2024-0001", 1)
        tracker.update("cisa", "CVE-2021-44228", 2, SyncStatus.COMPLETED)
        assert sorted(tracker.all()) == ["cisa", "recent"]

    def test_reset(self, tracker):
        tracker.update("full", "year_2010", 100)
        assert tracker.reset("full") is True
        assert tracker.get("full") is None
        assert tracker.reset("full") is False

    def test_to_dict(self, tracker):
        progress = tracker.update("cisa", "", 5, SyncStatus.COMPLETED)
        assert progress.to_dict() == {
            "stream_name": "cisa",
            "cursor": "",
            "total_processed": 5,
            "status": "completed",
            "updated_at": FIXED_NOW.isoformat(),
        }

    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "progress.sqlite"
        stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        with ProgressTracker(path, now=lambda: stamp) as first:
            first.update("full", "year_2015", 42)
        with ProgressTracker(path) as second:
            progress = second.get("full")
        assert progress.cursor == "year_2015"
        assert progress.updated_at == stamp
