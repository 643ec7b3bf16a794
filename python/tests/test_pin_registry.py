"""Tests for the pin registry.

Covers:
- insert_if_absent idempotency and initial state
- forward-only lifecycle guards
- age boundaries on the named selections
- oldest-first ordering under limits
- overdue reporting and aggregate counts
"""

import pytest

from hotnode.db.models import PinStatus, as_utc
from hotnode.errors import InvalidTransitionError, PinNotFoundError
from tests.helpers import seed_pin


class TestInsertIfAbsent:
    def test_new_pin_starts_pending(self, registry, clock):
        assert registry.insert_if_absent("QmNew", size_bytes=2048) is True

        pin = registry.get("QmNew")
        assert pin.status == PinStatus.pending
        assert pin.migrated is False
        assert pin.unpinned is False
        assert pin.retry_count == 0
        assert pin.size_bytes == 2048
        assert registry.age_days(pin) == pytest.approx(0)

    def test_second_insert_is_a_no_op(self, registry, clock):
        registry.insert_if_absent("QmDup", size_bytes=1)
        clock.advance(days=2)

        assert registry.insert_if_absent("QmDup", size_bytes=999) is False

        pin = registry.get("QmDup")
        assert pin.size_bytes == 1
        assert registry.age_days(pin) == pytest.approx(2)

    def test_existing_identifiers(self, registry):
        registry.insert_if_absent("QmA")
        registry.insert_if_absent("QmB")

        assert registry.existing_identifiers(["QmA", "QmB", "QmC", "QmA"]) == {"QmA", "QmB"}

    def test_get_missing_returns_none(self, registry):
        assert registry.get("QmMissing") is None
        with pytest.raises(PinNotFoundError):
            registry.require("QmMissing")


class TestForwardOnlyGuards:
    """status, migrated and unpinned never move backwards."""

    def test_pending_to_accepted(self, registry, clock):
        seed_pin(registry, clock, "QmA")
        pin = registry.update_fields("QmA", status=PinStatus.accepted)
        assert pin.status == PinStatus.accepted

    def test_accepted_cannot_become_rejected(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.accepted)
        with pytest.raises(InvalidTransitionError):
            registry.update_fields("QmA", status=PinStatus.rejected)

    def test_cannot_return_to_pending(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.rejected)
        with pytest.raises(InvalidTransitionError):
            registry.update_fields("QmA", status=PinStatus.pending)

    def test_migrated_cannot_be_cleared(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.accepted, migrated=True)
        with pytest.raises(InvalidTransitionError):
            registry.update_fields("QmA", migrated=False)

    def test_unpinned_cannot_be_cleared(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.accepted, migrated=True, unpinned=True)
        with pytest.raises(InvalidTransitionError):
            registry.update_fields("QmA", unpinned=False)

    def test_rejected_pin_cannot_be_marked_migrated(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.rejected)
        with pytest.raises(InvalidTransitionError, match="rejected"):
            registry.update_fields("QmA", migrated=True)

    def test_retry_count_cannot_decrease(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.accepted)
        registry.record_retry("QmA", "boom")
        with pytest.raises(InvalidTransitionError):
            registry.update_fields("QmA", retry_count=0)

    def test_immutable_fields_rejected(self, registry, clock):
        seed_pin(registry, clock, "QmA")
        with pytest.raises(ValueError, match="discovered_at"):
            registry.update_fields("QmA", discovered_at=clock.now)

    def test_migrated_stamps_timestamp(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.accepted)
        clock.advance(days=4)
        pin = registry.update_fields("QmA", migrated=True)
        assert as_utc(pin.migrated_at) == clock.now

    def test_update_missing_pin(self, registry):
        with pytest.raises(PinNotFoundError):
            registry.update_fields("QmMissing", note="x")


class TestResolvePending:
    def test_only_pending_pins_resolve(self, registry, clock):
        seed_pin(registry, clock, "QmA")
        assert registry.resolve_pending("QmA", PinStatus.accepted) is True
        assert registry.resolve_pending("QmA", PinStatus.rejected) is False
        assert registry.get("QmA").status == PinStatus.accepted

    def test_absent_pin(self, registry):
        assert registry.resolve_pending("QmMissing", PinStatus.accepted) is False


class TestRecordRetry:
    def test_increments_atomically(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.accepted)

        assert registry.record_retry("QmA", "first") == 1
        assert registry.record_retry("QmA", "second") == 2

        pin = registry.get("QmA")
        assert pin.retry_count == 2
        assert pin.note == "second"
        assert pin.last_retry_at is not None

    def test_missing_pin(self, registry):
        with pytest.raises(PinNotFoundError):
            registry.record_retry("QmMissing", "x")


class TestSelections:
    def test_eligibility_boundary(self, registry, clock):
        """age = start-1 is excluded, age = start is included."""
        seed_pin(registry, clock, "QmDay3", age_days=3, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmDay4", age_days=4, status=PinStatus.accepted)

        eligible = registry.eligible_for_migration(start_after_days=4, limit=10)

        assert [p.identifier for p in eligible] == ["QmDay4"]

    def test_eligibility_requires_accepted_and_unmigrated(self, registry, clock):
        seed_pin(registry, clock, "QmPending", age_days=10)
        seed_pin(registry, clock, "QmRejected", age_days=10, status=PinStatus.rejected)
        seed_pin(registry, clock, "QmDone", age_days=10, status=PinStatus.accepted, migrated=True)
        seed_pin(registry, clock, "QmDue", age_days=10, status=PinStatus.accepted)

        eligible = registry.eligible_for_migration(start_after_days=4, limit=10)

        assert [p.identifier for p in eligible] == ["QmDue"]

    def test_oldest_first_under_limit(self, registry, clock):
        seed_pin(registry, clock, "QmMiddle", age_days=6, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmOldest", age_days=9, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmNewest", age_days=5, status=PinStatus.accepted)

        eligible = registry.eligible_for_migration(start_after_days=4, limit=2)

        assert [p.identifier for p in eligible] == ["QmOldest", "QmMiddle"]

    def test_retry_count_does_not_gate_eligibility(self, registry, clock):
        seed_pin(registry, clock, "QmStuck", age_days=5, status=PinStatus.accepted)
        for _ in range(25):
            registry.record_retry("QmStuck", "still failing")

        eligible = registry.eligible_for_migration(start_after_days=4, limit=10)

        assert [p.identifier for p in eligible] == ["QmStuck"]

    def test_cleanup_boundary(self, registry, clock):
        seed_pin(registry, clock, "QmDay6", age_days=6, status=PinStatus.accepted, migrated=True)
        seed_pin(registry, clock, "QmDay7", age_days=7, status=PinStatus.accepted, migrated=True)
        seed_pin(
            registry,
            clock,
            "QmGone",
            age_days=9,
            status=PinStatus.accepted,
            migrated=True,
            unpinned=True,
        )

        due = registry.migrated_for_cleanup(delete_after_days=7)

        assert [p.identifier for p in due] == ["QmDay7"]

    def test_rejected_retention_boundary(self, registry, clock):
        seed_pin(registry, clock, "QmDay1", age_days=1, status=PinStatus.rejected)
        seed_pin(registry, clock, "QmDay2", age_days=2, status=PinStatus.rejected)

        due = registry.rejected_for_cleanup(retention_days=2)

        assert [p.identifier for p in due] == ["QmDay2"]

    def test_age_is_computed_at_query_time(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.accepted)
        assert registry.eligible_for_migration(4, 10) == []

        clock.advance(days=4)

        assert [p.identifier for p in registry.eligible_for_migration(4, 10)] == ["QmA"]


class TestOverdueAndCounts:
    def test_overdue_is_strictly_older_than_threshold(self, registry, clock):
        seed_pin(registry, clock, "QmDay7", age_days=7, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmDay9", age_days=9.5, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmMigrated", age_days=12, status=PinStatus.accepted, migrated=True)

        report = registry.overdue(threshold_days=7)

        assert report.count == 1
        assert report.oldest_age_days == 9

    def test_no_overdue(self, registry):
        report = registry.overdue(threshold_days=7)
        assert report.count == 0
        assert report.oldest_age_days == 0

    def test_counts(self, registry, clock):
        seed_pin(registry, clock, "QmPending")
        seed_pin(registry, clock, "QmAccepted", age_days=1, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmOverdue", age_days=8, status=PinStatus.accepted)
        seed_pin(registry, clock, "QmRejected", status=PinStatus.rejected)
        seed_pin(
            registry,
            clock,
            "QmReleased",
            age_days=8,
            status=PinStatus.accepted,
            migrated=True,
            unpinned=True,
        )

        counts = registry.counts()

        assert counts.total == 5
        assert counts.pending == 1
        assert counts.accepted == 3
        assert counts.pending_migration == 2
        assert counts.migrated == 1
        assert counts.unpinned == 1
        assert counts.rejected == 1
        assert counts.overdue == 1

    def test_counts_on_empty_registry(self, registry):
        assert registry.counts().total == 0


class TestDelete:
    def test_delete_removes_row(self, registry, clock):
        seed_pin(registry, clock, "QmA", status=PinStatus.rejected)
        assert registry.delete("QmA") is True
        assert registry.get("QmA") is None
        assert registry.delete("QmA") is False
