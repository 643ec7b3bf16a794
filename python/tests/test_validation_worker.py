"""Tests for the validation worker."""

import pytest

from hotnode.db.models import PinStatus
from hotnode.services.validation import ValidationReport, ValidationWorker
from tests.helpers import seed_pin


@pytest.fixture
def worker(registry, validation_source, events, notifier):
    return ValidationWorker(
        registry=registry,
        source=validation_source,
        events=events,
        notifier=notifier,
        batch_size=2,
    )


class TestValidation:
    @pytest.mark.asyncio
    async def test_pending_pins_resolved(self, worker, registry, clock, validation_source):
        seed_pin(registry, clock, "QmGood")
        seed_pin(registry, clock, "QmBad")
        validation_source.allowed = {"QmGood"}

        report = await worker.execute()

        assert report.validated == 2
        assert report.accepted == 1
        assert report.rejected == 1
        assert report.method == "fake"
        assert registry.get("QmGood").status == PinStatus.accepted
        assert registry.get("QmBad").status == PinStatus.rejected

    @pytest.mark.asyncio
    async def test_batches_oldest_first_in_one_session(
        self, worker, registry, clock, validation_source
    ):
        seed_pin(registry, clock, "QmC", age_days=1)
        seed_pin(registry, clock, "QmA", age_days=3)
        seed_pin(registry, clock, "QmB", age_days=2)

        await worker.execute()

        assert validation_source.batches == [["QmA", "QmB"], ["QmC"]]
        assert validation_source.opened == 1
        assert validation_source.closed == 1

    @pytest.mark.asyncio
    async def test_only_pending_pins_are_sent(self, worker, registry, clock, validation_source):
        seed_pin(registry, clock, "QmAccepted", status=PinStatus.accepted)
        seed_pin(registry, clock, "QmPending")

        await worker.execute()

        assert validation_source.batches == [["QmPending"]]

    @pytest.mark.asyncio
    async def test_nothing_pending_skips_session(self, worker, validation_source, events):
        report = await worker.execute()

        assert report.validated == 0
        assert validation_source.opened == 0
        assert events.recent(event_type="cid_validation") == []

    @pytest.mark.asyncio
    async def test_records_event(self, worker, registry, clock, validation_source, events):
        seed_pin(registry, clock, "QmA")
        validation_source.allowed = {"QmA"}

        await worker.execute()

        [event] = events.recent(event_type="cid_validation")
        assert event.event_metadata["accepted"] == 1


class TestValidationFailure:
    @pytest.mark.asyncio
    async def test_source_failure_leaves_pins_pending(
        self, worker, registry, clock, validation_source, notifier
    ):
        seed_pin(registry, clock, "QmA")
        validation_source.fail_with = "authorization database unreachable"

        result = await worker.run()

        assert result.ok is False
        assert result.error_type == "ValidationSourceError"
        assert registry.get("QmA").status == PinStatus.pending
        assert validation_source.closed == 1
        assert notifier.titles() == ["Cid Validation Run Failed"]

    @pytest.mark.asyncio
    async def test_concurrently_resolved_pin_is_skipped(self, worker, registry, clock):
        seed_pin(registry, clock, "QmA")
        seed_pin(registry, clock, "QmB")
        registry.resolve_pending("QmA", PinStatus.accepted)

        report = await worker.execute()

        # QmA was no longer pending when read, so only QmB is sent
        assert report.validated == 1
        assert report.skipped == 0

    @pytest.mark.asyncio
    async def test_resolve_race_counts_as_skipped(self, worker, registry, clock):
        seed_pin(registry, clock, "QmA")
        registry.resolve_pending("QmA", PinStatus.rejected)
        report = ValidationReport()

        worker._apply(["QmA"], [True], report)

        assert report.skipped == 1
        assert registry.get("QmA").status == PinStatus.rejected
