"""Tests for the continuous sync runner."""

import logging
from datetime import timedelta

import pytest

from cve_db.models import SyncRunResult, SyncStatus
from cve_db.orchestration.sync_orchestrator import SyncType
from cve_db.scripts import scheduler
from cve_db.scripts.scheduler import ContinuousSyncRunner, ScheduledStream
from fakes import FIXED_NOW, make_settings


class FakeOrchestrator:
    """Records which streams ran; raises or reports failure on request"""

    def __init__(self, record_store, failures=None, unsuccessful=()):
        self.record_store = record_store
        self.failures = failures or {}
        self.unsuccessful = set(unsuccessful)
        self.calls = []

    def sync(self, sync_type):
        sync_type = SyncType(sync_type)
        self.calls.append(sync_type.value)
        if sync_type.value in self.failures:
            raise self.failures[sync_type.value]
        result = SyncRunResult(stream=sync_type.value, start_time=FIXED_NOW)
        result.success = sync_type.value not in self.unsuccessful
        return result


class MutableNow:
    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def now():
    return MutableNow(FIXED_NOW)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_runner(store, tracker, now, sleeps):
    def _make(orchestrator=None):
        orchestrator = orchestrator or FakeOrchestrator(store)
        return ContinuousSyncRunner(orchestrator, tracker, make_settings(), sleep=sleeps.append, now=now)
    return _make


class TestRunTick:
    def test_first_tick_runs_everything(self, make_runner, store):
        orchestrator = FakeOrchestrator(store)
        make_runner(orchestrator).run_tick()
        assert orchestrator.calls == ["cisa", "recent", "continue"]

    def test_intervals_respected(self, make_runner, store, now):
        orchestrator = FakeOrchestrator(store)
        runner = make_runner(orchestrator)
        runner.run_tick()

        orchestrator.calls.clear()
        now.advance(minutes=5)
        runner.run_tick()
        assert orchestrator.calls == ["continue"]

        orchestrator.calls.clear()
        now.advance(hours=2)
        runner.run_tick()
        assert orchestrator.calls == ["recent", "continue"]

        orchestrator.calls.clear()
        now.advance(hours=23)
        runner.run_tick()
        assert orchestrator.calls == ["cisa", "recent", "continue"]

    def test_completed_full_not_continued(self, make_runner, store, tracker):
        tracker.update("full", "year_1999", 250000, SyncStatus.COMPLETED)
        orchestrator = FakeOrchestrator(store)
        make_runner(orchestrator).run_tick()
        assert "continue" not in orchestrator.calls

    def test_stream_failure_is_isolated(self, make_runner, store):
        orchestrator = FakeOrchestrator(store, failures={"cisa": RuntimeError("KEV feed exploded")})
        runner = make_runner(orchestrator)
        results = runner.run_tick()

        assert orchestrator.calls == ["cisa", "recent", "continue"]
        assert results["cisa"] is None
        assert results["recent"].success

        orchestrator.calls.clear()
        runner.run_tick()
        assert orchestrator.calls == ["cisa", "continue"]

    def test_unsuccessful_run_is_retried(self, make_runner, store, now):
        orchestrator = FakeOrchestrator(store, unsuccessful={"recent"})
        runner = make_runner(orchestrator)
        runner.run_tick()

        orchestrator.calls.clear()
        now.advance(minutes=5)
        runner.run_tick()
        assert orchestrator.calls == ["recent", "continue"]

    def test_restart_uses_persisted_completion_times(self, make_runner, store, tracker, now):
        tracker.update("recent", "CVE-2024-0001", 10, SyncStatus.COMPLETED)
        tracker.update("cisa", "CVE-2024-0002", 1200, SyncStatus.COMPLETED)
        now.advance(minutes=10)
        orchestrator = FakeOrchestrator(store)
        make_runner(orchestrator).run_tick()
        assert orchestrator.calls == ["continue"]

    def test_in_progress_stream_not_seeded(self, make_runner, store, tracker):
        tracker.update("recent", "CVE-2024-0001", 10, SyncStatus.IN_PROGRESS)
        orchestrator = FakeOrchestrator(store)
        make_runner(orchestrator).run_tick()
        assert "recent" in orchestrator.calls

    def test_logs_database_stats(self, make_runner, caplog):
        with caplog.at_level(logging.INFO, logger="cve_db.scripts.scheduler"):
            make_runner().run_tick()
        assert "Database: 0 CVEs" in caplog.text


class TestRunForever:
    def test_sleeps_between_ticks(self, make_runner, sleeps):
        make_runner().run_forever(max_ticks=2)
        assert sleeps == [300, 300]

    def test_tick_error_backs_off(self, make_runner, sleeps, monkeypatch):
        runner = make_runner()

        def broken_tick():
            raise RuntimeError("database is locked")

        monkeypatch.setattr(runner, "run_tick", broken_tick)
        runner.run_forever(max_ticks=2)
        assert sleeps == [60, 60]

    def test_keyboard_interrupt_stops(self, make_runner, sleeps, monkeypatch):
        runner = make_runner()

        def interrupted_tick():
            raise KeyboardInterrupt

        monkeypatch.setattr(runner, "run_tick", interrupted_tick)
        runner.run_forever()
        assert sleeps == []


class TestScheduledStream:
    def test_never_run_is_due(self):
        assert ScheduledStream("recent", SyncType.RECENT, 3600).is_due(FIXED_NOW)

    def test_due_after_interval(self):
        stream = ScheduledStream("recent", SyncType.RECENT, 3600, last_success=FIXED_NOW)
        assert not stream.is_due(FIXED_NOW + timedelta(minutes=59))
        assert stream.is_due(FIXED_NOW + timedelta(minutes=61))


class TestMain:
    def test_invalid_configuration_exits_cleanly(self, monkeypatch):
        monkeypatch.setattr(scheduler, "get_settings", lambda: make_settings(RECENT_WINDOW_DAYS=500))
        monkeypatch.setattr(scheduler, "setup_logging", lambda *args, **kwargs: None)
        with pytest.raises(SystemExit) as exc_info:
            scheduler.main([])
        assert exc_info.value.code == 1

    def test_runs_requested_ticks(self, tmp_path, monkeypatch):
        settings = make_settings(DATABASE_PATH=tmp_path / "cves.sqlite")
        ticks = []
        monkeypatch.setattr(scheduler, "get_settings", lambda: settings)
        monkeypatch.setattr(scheduler, "setup_logging", lambda *args, **kwargs: None)
        monkeypatch.setattr(ContinuousSyncRunner, "run_forever", lambda self, max_ticks=None: ticks.append(max_ticks))
        with pytest.raises(SystemExit) as exc_info:
            scheduler.main(["--max-ticks", "2"])
        assert exc_info.value.code == 0
        assert ticks == [2]
