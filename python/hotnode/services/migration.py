"""Migration worker: replicate aged, accepted pins to the replication target.

Per-pin state machine (migrate_one):

    verify on target --present--> migrated ("already present")
          | absent
          v
    pin on target (size-based timeout)
          | ok
          v
    wait propagation delay, verify again --present--> migrated
          | absent
          v
    failure: retry_count + 1, last_retry_at, note

retry_count is never an eligibility gate. Crossing max_retries is only
reported, so stuck pins keep being retried until an operator intervenes.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from hotnode.db.models import EventSeverity, Pin
from hotnode.errors import ErrorCode, HotNodeError, PinNotFoundError, ReplicationTargetError
from hotnode.logging import get_logger
from hotnode.services.events import EventLog
from hotnode.services.notifications import Notifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.stats import StatsRecorder
from hotnode.services.worker import ERRORS_KEPT, Report, Worker
from hotnode.storage.target import ReplicationTargetBase

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

NOTE_ALREADY_PRESENT = "Already present on supernode"
NOTE_MIGRATED = "Migrated to supernode"


@dataclass
class PinMigrationOutcome:
    identifier: str
    success: bool
    already_present: bool = False
    bytes_migrated: int = 0
    retry_count: int = 0
    error: str | None = None


@dataclass
class MigrationReport(Report):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    already_present: int = 0
    bytes_migrated: int = 0
    max_retries_reached: int = 0
    errors: list[str] = field(default_factory=list)


class MigrationWorker(Worker):
    name = "migration"

    def __init__(
        self,
        *,
        registry: PinRegistry,
        target: ReplicationTargetBase,
        stats: StatsRecorder,
        events: EventLog,
        notifier: Notifier,
        start_after_days: int = 4,
        batch_size: int = 10,
        throttle_delay_ms: int = 2000,
        propagation_delay_ms: int = 2000,
        max_retries: int = 10,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(registry=registry, events=events, notifier=notifier)
        self.target = target
        self.stats = stats
        self.start_after_days = start_after_days
        self.batch_size = batch_size
        self.throttle_delay_s = throttle_delay_ms / 1000
        self.propagation_delay_s = propagation_delay_ms / 1000
        self.max_retries = max_retries
        self._sleep = sleep

    async def migrate_one(self, pin: Pin) -> PinMigrationOutcome:
        """Run the per-pin state machine. Never raises."""
        identifier = pin.identifier
        try:
            if await self.target.verify(identifier):
                self.registry.update_fields(identifier, migrated=True, note=NOTE_ALREADY_PRESENT)
                logger.info("migration_already_present", identifier=identifier)
                return PinMigrationOutcome(identifier, success=True, already_present=True)

            await self.target.pin(identifier, pin.size_bytes)
            await self._sleep(self.propagation_delay_s)

            if not await self.target.verify(identifier):
                raise ReplicationTargetError(
                    "Pin call succeeded but target does not report the pin",
                    code=ErrorCode.E_TARGET_NOT_CONVERGED,
                )

            self.registry.update_fields(identifier, migrated=True, note=NOTE_MIGRATED)
            size = pin.size_bytes or 0
            logger.info("migration_pin_succeeded", identifier=identifier, size_bytes=size)
            return PinMigrationOutcome(identifier, success=True, bytes_migrated=size)

        except Exception as e:
            message = e.message if isinstance(e, HotNodeError) else f"{type(e).__name__}: {e}"
            try:
                retry_count = self.registry.record_retry(identifier, f"Migration failed: {message}")
            except PinNotFoundError:
                retry_count = 0
            except Exception as record_error:
                logger.error(
                    "migration_retry_record_failed",
                    identifier=identifier,
                    error_type=type(record_error).__name__,
                    error=str(record_error),
                )
                retry_count = pin.retry_count or 0
            logger.warning(
                "migration_pin_failed",
                identifier=identifier,
                error=message,
                retry_count=retry_count,
            )
            return PinMigrationOutcome(
                identifier, success=False, retry_count=retry_count, error=message
            )

    async def execute(self) -> MigrationReport:
        report = MigrationReport()
        eligible = self.registry.eligible_for_migration(self.start_after_days, self.batch_size)
        if not eligible:
            logger.info("migration_nothing_eligible", start_after_days=self.start_after_days)
            return report

        logger.info("migration_batch_selected", count=len(eligible))
        failures: list[str] = []
        for index, pin in enumerate(eligible):
            if index:
                await self._sleep(self.throttle_delay_s)

            outcome = await self.migrate_one(pin)
            report.processed += 1
            if outcome.success:
                report.succeeded += 1
                report.bytes_migrated += outcome.bytes_migrated
                if outcome.already_present:
                    report.already_present += 1
                continue

            report.failed += 1
            if outcome.retry_count >= self.max_retries:
                report.max_retries_reached += 1
            failures.append(f"{outcome.identifier}: {outcome.error}")

        report.errors = failures[:ERRORS_KEPT]

        self.stats.record_migration(
            processed=report.processed,
            succeeded=report.succeeded,
            failed=report.failed,
            already_present=report.already_present,
            bytes_migrated=report.bytes_migrated,
        )
        self.events.record(
            "migration",
            f"Migrated {report.succeeded}/{report.processed} pins to supernode",
            severity=EventSeverity.warning if report.failed else EventSeverity.info,
            metadata=report.to_dict(),
        )
        if failures:
            await self.notifier.notify_migration_errors(failures)

        return report
