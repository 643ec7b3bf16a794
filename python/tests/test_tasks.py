"""Tests for scheduling and the Celery task bodies.

Task bodies are exercised directly (no broker): open_components is replaced
with one yielding the fake-backed components.
"""

from contextlib import asynccontextmanager
from datetime import timedelta

import pytest
from celery.schedules import crontab

from hotnode.celery import build_beat_schedule, celery_app, crontab_from_expression
from hotnode.db.models import utcnow
from hotnode.services.events import EventLog
from hotnode.services.stats import StatsRecorder
from hotnode.tasks import runner
from hotnode.tasks.prune_stats import prune_retention
from tests.helpers import FakeClock, make_settings


@pytest.fixture
def patched_components(monkeypatch, components):
    @asynccontextmanager
    async def fake_open_components(settings, session_factory=None):
        yield components

    monkeypatch.setattr(runner, "open_components", fake_open_components)
    return components


class TestSchedule:
    def test_crontab_from_expression(self):
        schedule = crontab_from_expression("0 */12 * * *")
        assert isinstance(schedule, crontab)
        assert schedule.minute == {0}
        assert schedule.hour == {0, 12}

    def test_rejects_wrong_field_count(self):
        with pytest.raises(ValueError, match="Expected 5 cron fields"):
            crontab_from_expression("0 2 * *")

    def test_beat_schedule_covers_every_task(self):
        schedule = build_beat_schedule(make_settings(CLEANUP_GC_SCHEDULE="15 4 * * *"))

        assert {entry["task"] for entry in schedule.values()} == {
            "discover_pins",
            "validate_pins",
            "migrate_pins",
            "cleanup_pins",
            "prune_stats",
            "check_node_health",
        }
        cleanup = schedule["cleanup_pins-schedule"]["schedule"]
        assert cleanup.minute == {15}
        assert cleanup.hour == {4}

    def test_tasks_are_registered_on_hotnode_queue(self):
        import hotnode.tasks  # noqa: F401

        for name in (
            "discover_pins",
            "validate_pins",
            "migrate_pins",
            "cleanup_pins",
            "check_node_health",
        ):
            assert name in celery_app.tasks
            assert celery_app.conf.task_routes[name] == {"queue": "hotnode"}


class TestRunWorkerTask:
    def test_returns_run_result(self, patched_components, storage_node):
        storage_node.add_pin("QmA")

        result = runner.run_worker_task("discovery", "discover_pins", "task-1")

        assert result["ok"] is True
        assert result["worker"] == "pin_discovery"
        assert result["report"]["added"] == 1

    def test_worker_failure_is_a_failed_result_not_an_exception(
        self, patched_components, storage_node
    ):
        storage_node.running = False

        result = runner.run_worker_task("cleanup", "cleanup_pins", "task-2")

        assert result["ok"] is False
        assert result["error_type"] == "DependencyUnavailableError"

    def test_node_health_task_records_first_observation(self, patched_components, events):
        result = runner.run_worker_task("node_health", "check_node_health", "task-4")

        assert result["ok"] is True
        assert result["report"]["changed"] is True
        [event] = events.recent(event_type="ipfs_status")
        assert event.message == "IPFS daemon came online"

    def test_unknown_worker_raises(self, patched_components):
        with pytest.raises(KeyError, match="Unknown worker"):
            runner.run_worker_task("compaction", "compact", "task-3")


class TestPruneRetention:
    def test_deletes_rows_past_retention(self, session_factory):
        old_clock = FakeClock(utcnow() - timedelta(days=120))
        StatsRecorder(session_factory, clock=old_clock).record_migration(
            processed=1, succeeded=1, failed=0, already_present=0, bytes_migrated=10
        )
        EventLog(session_factory, clock=old_clock).record("migration", "old run")

        fresh_stats = StatsRecorder(session_factory)
        fresh_stats.record_migration(
            processed=2, succeeded=2, failed=0, already_present=0, bytes_migrated=20
        )
        fresh_events = EventLog(session_factory)
        fresh_events.record("migration", "new run")

        result = prune_retention(session_factory)

        assert result == {"stats_deleted": 1, "events_deleted": 1}
        assert fresh_stats.migration_for(utcnow().date()).pins_processed == 2
        assert [e.message for e in fresh_events.recent()] == ["new run"]
