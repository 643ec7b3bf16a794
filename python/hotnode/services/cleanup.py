"""Cleanup worker: reclaim local storage.

Fixed order on every run:

1. Migrated reclaim: unpin migrated pins aged >= delete_after_days and flag
   them unpinned. The row stays for audit. A pin already absent from the
   node counts as removed. Any other failed removal leaves unpinned false
   so the next run retries it.
2. Rejected reclaim: unpin rejected pins aged >= invalid_retention_days,
   treating "not pinned" as success, then delete the row.
3. Garbage collection: always runs. Failures are recorded, not raised.
4. Overdue check: accepted, unmigrated pins older than overdue_days are
   reported. Eligibility is not affected.
"""

import time
from dataclasses import dataclass, field

from hotnode.db.models import EventSeverity
from hotnode.errors import ErrorCode, StorageNodeError
from hotnode.logging import get_logger
from hotnode.services.events import EventLog
from hotnode.services.notifications import Notifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.stats import StatsRecorder
from hotnode.services.worker import ERRORS_KEPT, Report, Worker
from hotnode.storage.node import StorageNodeBase

logger = get_logger(__name__)

BYTES_PER_GB = 1024**3


@dataclass
class GCResult:
    duration_seconds: int = 0
    bytes_freed: int = 0
    size_before: int = 0
    size_after: int = 0
    error: str | None = None


@dataclass
class CleanupReport(Report):
    migrated_unpinned: int = 0
    bytes_freed_migrated: int = 0
    invalid_removed: int = 0
    bytes_freed_invalid: int = 0
    gc_duration_seconds: int = 0
    gc_bytes_freed: int = 0
    gc_error: str | None = None
    overdue_pins: int = 0
    oldest_overdue_days: int = 0
    errors: list[str] = field(default_factory=list)


class CleanupWorker(Worker):
    name = "cleanup"

    def __init__(
        self,
        *,
        registry: PinRegistry,
        storage_node: StorageNodeBase,
        stats: StatsRecorder,
        events: EventLog,
        notifier: Notifier,
        delete_after_days: int = 7,
        invalid_retention_days: int = 2,
        overdue_days: int = 7,
    ):
        super().__init__(registry=registry, events=events, notifier=notifier)
        self.storage_node = storage_node
        self.stats = stats
        self.delete_after_days = delete_after_days
        self.invalid_retention_days = invalid_retention_days
        self.overdue_days = overdue_days

    def _note_error(self, report: CleanupReport, message: str) -> None:
        if len(report.errors) < ERRORS_KEPT:
            report.errors.append(message)

    async def reclaim_migrated(self, report: CleanupReport) -> None:
        pins = self.registry.migrated_for_cleanup(self.delete_after_days)
        if not pins:
            logger.info("cleanup_no_migrated_pins")
            return

        logger.info("cleanup_migrated_selected", count=len(pins))
        for pin in pins:
            try:
                try:
                    await self.storage_node.pin_remove(pin.identifier)
                except StorageNodeError as e:
                    if e.code != ErrorCode.E_NODE_PIN_ABSENT:
                        raise
                    logger.debug("cleanup_migrated_already_absent", identifier=pin.identifier)
                self.registry.update_fields(pin.identifier, unpinned=True)
            except Exception as e:
                logger.warning("cleanup_unpin_failed", identifier=pin.identifier, error=str(e))
                self._note_error(report, f"{pin.identifier}: {e}")
                continue

            report.migrated_unpinned += 1
            report.bytes_freed_migrated += pin.size_bytes or 0
            logger.info("cleanup_unpinned_migrated", identifier=pin.identifier)

    async def reclaim_rejected(self, report: CleanupReport) -> None:
        pins = self.registry.rejected_for_cleanup(self.invalid_retention_days)
        if not pins:
            logger.info("cleanup_no_rejected_pins")
            return

        logger.info("cleanup_rejected_selected", count=len(pins))
        for pin in pins:
            try:
                await self.storage_node.pin_remove(pin.identifier)
            except StorageNodeError as e:
                if e.code != ErrorCode.E_NODE_PIN_ABSENT:
                    logger.warning(
                        "cleanup_remove_rejected_failed", identifier=pin.identifier, error=str(e)
                    )
                    self._note_error(report, f"{pin.identifier}: {e}")
                    continue
                logger.debug("cleanup_rejected_already_absent", identifier=pin.identifier)

            try:
                self.registry.delete(pin.identifier)
            except Exception as e:
                logger.warning(
                    "cleanup_delete_row_failed", identifier=pin.identifier, error=str(e)
                )
                self._note_error(report, f"{pin.identifier}: {e}")
                continue

            report.invalid_removed += 1
            report.bytes_freed_invalid += pin.size_bytes or 0
            logger.info("cleanup_removed_rejected", identifier=pin.identifier)

    async def collect_garbage(self) -> GCResult:
        result = GCResult()
        start = time.monotonic()
        try:
            result.size_before = (await self.storage_node.repo_stat()).repo_size
            await self.storage_node.repo_gc()
            result.size_after = (await self.storage_node.repo_stat()).repo_size
            result.bytes_freed = max(0, result.size_before - result.size_after)
        except Exception as e:
            result.error = str(e)
            logger.error("gc_failed", error_type=type(e).__name__, error=str(e))
        result.duration_seconds = int(time.monotonic() - start)

        if result.error is None:
            logger.info(
                "gc_complete",
                bytes_freed=result.bytes_freed,
                duration_seconds=result.duration_seconds,
            )
        await self.notifier.notify_gc(result.duration_seconds, result.bytes_freed, result.error)
        return result

    async def check_overdue(self, report: CleanupReport) -> None:
        overdue = self.registry.overdue(self.overdue_days)
        report.overdue_pins = overdue.count
        report.oldest_overdue_days = overdue.oldest_age_days
        if overdue.count:
            logger.warning(
                "overdue_pins_detected",
                count=overdue.count,
                oldest_age_days=overdue.oldest_age_days,
            )
            await self.notifier.notify_overdue(
                overdue.count, overdue.oldest_age_days, self.overdue_days
            )

    async def execute(self) -> CleanupReport:
        await self.require_storage_node(self.storage_node)
        report = CleanupReport()

        await self.reclaim_migrated(report)
        await self.reclaim_rejected(report)
        gc = await self.collect_garbage()
        report.gc_duration_seconds = gc.duration_seconds
        report.gc_bytes_freed = gc.bytes_freed
        report.gc_error = gc.error
        await self.check_overdue(report)

        self.stats.record_cleanup(
            migrated_unpinned=report.migrated_unpinned,
            invalid_removed=report.invalid_removed,
            bytes_freed_migrated=report.bytes_freed_migrated,
            bytes_freed_invalid=report.bytes_freed_invalid,
            gc_ran=True,
            gc_duration_seconds=gc.duration_seconds,
            gc_bytes_freed=gc.bytes_freed,
            gc_failed=gc.error is not None,
        )
        self._record_events(report, gc)
        return report

    def _record_events(self, report: CleanupReport, gc: GCResult) -> None:
        if report.migrated_unpinned:
            self.events.record(
                "cleanup_migrated",
                f"Unpinned {report.migrated_unpinned} migrated pins "
                f"({report.bytes_freed_migrated / BYTES_PER_GB:.2f} GB)",
                metadata={
                    "count": report.migrated_unpinned,
                    "bytes": report.bytes_freed_migrated,
                },
            )
        if report.invalid_removed:
            self.events.record(
                "cleanup_invalid",
                f"Cleaned {report.invalid_removed} invalid pins "
                f"({report.bytes_freed_invalid / BYTES_PER_GB:.2f} GB)",
                metadata={"count": report.invalid_removed, "bytes": report.bytes_freed_invalid},
            )
        if gc.error:
            self.events.record(
                "gc_failed",
                f"Garbage collection failed: {gc.error}",
                severity=EventSeverity.error,
                metadata={"duration_seconds": gc.duration_seconds},
            )
        else:
            self.events.record(
                "gc_complete",
                f"GC freed {gc.bytes_freed / BYTES_PER_GB:.2f} GB in {gc.duration_seconds}s",
                metadata={
                    "bytes_freed": gc.bytes_freed,
                    "duration_seconds": gc.duration_seconds,
                    "size_before": gc.size_before,
                    "size_after": gc.size_after,
                },
            )

        severity = EventSeverity.info
        if report.errors or gc.error:
            severity = EventSeverity.warning
        self.events.record(
            "cleanup",
            f"Cleanup complete: {report.migrated_unpinned} migrated unpinned, "
            f"{report.invalid_removed} invalid removed, {report.overdue_pins} overdue",
            severity=severity,
            metadata=report.to_dict(),
        )
