"""Tests for the cleanup worker."""

import pytest

from hotnode.db.models import EventSeverity, PinStatus, as_utc
from hotnode.services.cleanup import CleanupWorker
from tests.helpers import seed_pin


@pytest.fixture
def worker(registry, storage_node, stats, events, notifier):
    return CleanupWorker(
        registry=registry,
        storage_node=storage_node,
        stats=stats,
        events=events,
        notifier=notifier,
        delete_after_days=7,
        invalid_retention_days=2,
        overdue_days=7,
    )


def seed_local(registry, clock, storage_node, identifier, size_bytes=1024, **kwargs):
    storage_node.add_pin(identifier, size_bytes)
    return seed_pin(registry, clock, identifier, size_bytes=size_bytes, **kwargs)


class TestMigratedReclaim:
    @pytest.mark.asyncio
    async def test_boundary(self, worker, registry, clock, storage_node):
        for identifier, age in (("QmDay6", 6), ("QmDay7", 7)):
            seed_local(
                registry,
                clock,
                storage_node,
                identifier,
                age_days=age,
                status=PinStatus.accepted,
                migrated=True,
            )

        report = await worker.execute()

        assert report.migrated_unpinned == 1
        assert storage_node.removed == ["QmDay7"]
        assert registry.get("QmDay6").unpinned is False
        day7 = registry.get("QmDay7")
        assert day7.unpinned is True
        assert as_utc(day7.unpinned_at) == clock.now

    @pytest.mark.asyncio
    async def test_unmigrated_pins_are_never_unpinned(
        self, worker, registry, clock, storage_node
    ):
        seed_local(registry, clock, storage_node, "QmOld", age_days=30, status=PinStatus.accepted)

        await worker.execute()

        assert storage_node.has_pin("QmOld")
        assert registry.get("QmOld").unpinned is False

    @pytest.mark.asyncio
    async def test_failed_removal_is_retried_next_run(
        self, worker, registry, clock, storage_node
    ):
        seed_local(
            registry,
            clock,
            storage_node,
            "QmA",
            age_days=8,
            status=PinStatus.accepted,
            migrated=True,
        )
        storage_node.fail("pin_remove", "repo locked")

        report = await worker.execute()

        assert report.migrated_unpinned == 0
        assert report.errors == ["QmA: repo locked"]
        assert registry.get("QmA").unpinned is False

        storage_node.recover("pin_remove")
        report = await worker.execute()

        assert report.migrated_unpinned == 1
        assert registry.get("QmA").unpinned is True

    @pytest.mark.asyncio
    async def test_pin_already_gone_from_node_is_flagged_unpinned(
        self, worker, registry, clock, storage_node
    ):
        seed_pin(
            registry,
            clock,
            "QmGone",
            size_bytes=2048,
            age_days=10,
            status=PinStatus.accepted,
            migrated=True,
        )

        report = await worker.execute()

        assert report.errors == []
        assert report.migrated_unpinned == 1
        assert report.bytes_freed_migrated == 2048
        pin = registry.get("QmGone")
        assert pin.unpinned is True
        assert as_utc(pin.unpinned_at) == clock.now

    @pytest.mark.asyncio
    async def test_bytes_freed(self, worker, registry, clock, storage_node):
        seed_local(
            registry,
            clock,
            storage_node,
            "QmA",
            size_bytes=5000,
            age_days=8,
            status=PinStatus.accepted,
            migrated=True,
        )

        report = await worker.execute()

        assert report.bytes_freed_migrated == 5000
        assert report.gc_bytes_freed == 5000


class TestRejectedReclaim:
    @pytest.mark.asyncio
    async def test_rows_deleted_after_retention(self, worker, registry, clock, storage_node):
        seed_local(registry, clock, storage_node, "QmDay1", age_days=1, status=PinStatus.rejected)
        seed_local(registry, clock, storage_node, "QmDay2", age_days=2, status=PinStatus.rejected)

        report = await worker.execute()

        assert report.invalid_removed == 1
        assert registry.get("QmDay2") is None
        assert not storage_node.has_pin("QmDay2")
        assert registry.get("QmDay1") is not None

    @pytest.mark.asyncio
    async def test_absent_local_pin_counts_as_removed(self, worker, registry, clock):
        seed_pin(registry, clock, "QmGone", age_days=3, status=PinStatus.rejected)

        report = await worker.execute()

        assert report.invalid_removed == 1
        assert registry.get("QmGone") is None

    @pytest.mark.asyncio
    async def test_other_errors_keep_the_row(self, worker, registry, clock, storage_node):
        seed_local(registry, clock, storage_node, "QmA", age_days=3, status=PinStatus.rejected)
        storage_node.fail("pin_remove", "repo locked")

        report = await worker.execute()

        assert report.invalid_removed == 0
        assert registry.get("QmA") is not None


class TestGarbageCollection:
    @pytest.mark.asyncio
    async def test_runs_every_time(self, worker, storage_node, notifier, events):
        report = await worker.execute()

        assert storage_node.gc_runs == 1
        assert report.gc_error is None
        assert "Garbage Collection Complete" in notifier.titles()
        assert len(events.recent(event_type="gc_complete")) == 1

    @pytest.mark.asyncio
    async def test_failure_is_captured(self, worker, storage_node, notifier, events, stats, clock):
        storage_node.fail("repo_gc", "gc lock held")

        result = await worker.run()

        assert result.ok is True
        assert result.report["gc_error"] == "gc lock held"
        assert "Garbage Collection Failed" in notifier.titles()
        [event] = events.recent(event_type="gc_failed")
        assert event.severity == EventSeverity.error
        [summary] = events.recent(event_type="cleanup")
        assert summary.severity == EventSeverity.warning
        row = stats.cleanup_for(clock.now.date())
        assert row.gc_runs == 1
        assert row.gc_errors == 1


class TestOverdue:
    @pytest.mark.asyncio
    async def test_overdue_pins_are_reported(self, worker, registry, clock, notifier):
        seed_pin(registry, clock, "QmLate", age_days=10, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmOnTime", age_days=7, status=PinStatus.accepted)

        report = await worker.execute()

        assert report.overdue_pins == 1
        assert report.oldest_overdue_days == 10
        assert "Overdue Pins Detected" in notifier.titles()
        # Reporting never changes state
        assert registry.get("QmLate").migrated is False

    @pytest.mark.asyncio
    async def test_no_overdue_no_alert(self, worker, notifier):
        await worker.execute()
        assert "Overdue Pins Detected" not in notifier.titles()


class TestCleanupRun:
    @pytest.mark.asyncio
    async def test_daemon_down_abandons_before_touching_pins(
        self, worker, registry, clock, storage_node, stats
    ):
        seed_local(
            registry,
            clock,
            storage_node,
            "QmA",
            age_days=8,
            status=PinStatus.accepted,
            migrated=True,
        )
        storage_node.running = False

        result = await worker.run()

        assert result.ok is False
        assert result.error_type == "DependencyUnavailableError"
        assert registry.get("QmA").unpinned is False
        assert stats.cleanup_for(clock.now.date()) is None

    @pytest.mark.asyncio
    async def test_stats_accumulate(self, worker, registry, clock, storage_node, stats):
        seed_local(
            registry,
            clock,
            storage_node,
            "QmA",
            age_days=8,
            status=PinStatus.accepted,
            migrated=True,
        )
        await worker.execute()
        await worker.execute()

        row = stats.cleanup_for(clock.now.date())
        assert row.runs == 2
        assert row.migrated_pins_unpinned == 1
        assert row.gc_runs == 2
