"""Tests for daily aggregates and the audit event log."""

import pytest

from hotnode.db.models import Event, EventSeverity


class TestStatsRecorder:
    def test_runs_on_same_day_accumulate(self, stats, clock):
        stats.record_migration(
            processed=3, succeeded=2, failed=1, already_present=1, bytes_migrated=100
        )
        clock.advance(hours=6)
        stats.record_migration(
            processed=2, succeeded=2, failed=0, already_present=0, bytes_migrated=50
        )

        row = stats.migration_for(clock.now.date())

        assert row.runs == 2
        assert row.pins_processed == 5
        assert row.pins_succeeded == 4
        assert row.pins_failed == 1
        assert row.pins_already_present == 1
        assert row.bytes_migrated == 150

    def test_new_day_new_row(self, stats, clock):
        stats.record_migration(
            processed=1, succeeded=1, failed=0, already_present=0, bytes_migrated=1
        )
        first_day = clock.now.date()
        clock.advance(days=1)
        stats.record_migration(
            processed=4, succeeded=4, failed=0, already_present=0, bytes_migrated=4
        )

        assert stats.migration_for(first_day).pins_processed == 1
        assert stats.migration_for(clock.now.date()).pins_processed == 4
        assert [row.stat_date for row in stats.recent_migration(7)] == [
            clock.now.date(),
            first_day,
        ]

    def test_cleanup_rollup(self, stats, clock):
        for gc_failed in (False, True):
            stats.record_cleanup(
                migrated_unpinned=2,
                invalid_removed=1,
                bytes_freed_migrated=200,
                bytes_freed_invalid=10,
                gc_ran=True,
                gc_duration_seconds=30,
                gc_bytes_freed=150,
                gc_failed=gc_failed,
            )

        row = stats.cleanup_for(clock.now.date())

        assert row.runs == 2
        assert row.migrated_pins_unpinned == 4
        assert row.gc_runs == 2
        assert row.gc_errors == 1
        assert row.gc_duration_seconds == 60

    def test_prune(self, stats, clock):
        stats.record_migration(
            processed=1, succeeded=1, failed=0, already_present=0, bytes_migrated=1
        )
        clock.advance(days=91)
        stats.record_cleanup(
            migrated_unpinned=0,
            invalid_removed=0,
            bytes_freed_migrated=0,
            bytes_freed_invalid=0,
            gc_ran=True,
            gc_duration_seconds=1,
            gc_bytes_freed=0,
            gc_failed=False,
        )

        assert stats.prune(retention_days=90) == 1
        assert stats.recent_migration(365) == []
        assert stats.cleanup_for(clock.now.date()) is not None


class TestEventLog:
    def test_recent_newest_first(self, events, clock):
        events.record("pin_discovery", "first")
        clock.advance(seconds=10)
        events.record("migration", "second", severity=EventSeverity.warning, metadata={"n": 1})

        recent = events.recent()

        assert [e.message for e in recent] == ["second", "first"]
        assert recent[0].severity == EventSeverity.warning
        assert recent[0].event_metadata == {"n": 1}

    def test_filter_by_type(self, events):
        events.record("pin_discovery", "a")
        events.record("migration", "b")

        assert [e.message for e in events.recent(event_type="migration")] == ["b"]

    def test_prune(self, events, clock):
        events.record("cleanup", "old")
        clock.advance(days=100)
        events.record("cleanup", "new")

        assert events.prune(older_than_days=90) == 1
        assert [e.message for e in events.recent()] == ["new"]

    def test_write_failure_is_swallowed(self, events, engine):
        Event.__table__.drop(engine)

        # Must not raise
        events.record("migration", "lost")

    @pytest.mark.parametrize("days", [0, 1])
    def test_prune_keeps_recent(self, events, clock, days):
        events.record("cleanup", "kept")
        clock.advance(days=days)
        assert events.prune(older_than_days=90) == 0
