"""Discovery worker: reconcile the storage node's pin set into the registry.

Idempotent. Identifiers already tracked are skipped, new ones are inserted
as pending with a best-effort size. A failure on one identifier is recorded
and the rest of the scan continues.
"""

from dataclasses import dataclass, field

from hotnode.db.models import EventSeverity
from hotnode.logging import get_logger
from hotnode.services.events import EventLog
from hotnode.services.notifications import Notifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.worker import ERRORS_KEPT, Report, Worker
from hotnode.storage.node import StorageNodeBase

logger = get_logger(__name__)

DISCOVERY_NOTE = "Discovered by pin discovery"


@dataclass
class DiscoveryReport(Report):
    scanned: int = 0
    added: int = 0
    already_tracked: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class DiscoveryWorker(Worker):
    name = "pin_discovery"

    def __init__(
        self,
        *,
        registry: PinRegistry,
        storage_node: StorageNodeBase,
        events: EventLog,
        notifier: Notifier,
    ):
        super().__init__(registry=registry, events=events, notifier=notifier)
        self.storage_node = storage_node

    async def execute(self) -> DiscoveryReport:
        await self.require_storage_node(self.storage_node)

        identifiers = list(dict.fromkeys(await self.storage_node.list_pins()))
        report = DiscoveryReport(scanned=len(identifiers))
        tracked = self.registry.existing_identifiers(identifiers)
        report.already_tracked = len(tracked)

        for identifier in identifiers:
            if identifier in tracked:
                continue
            try:
                size = await self.storage_node.stat_object_size(identifier)
                if self.registry.insert_if_absent(
                    identifier, size_bytes=size, note=DISCOVERY_NOTE
                ):
                    report.added += 1
                    logger.info("pin_discovered", identifier=identifier, size_bytes=size)
                else:
                    # Inserted concurrently since the batch lookup
                    report.already_tracked += 1
            except Exception as e:
                report.failed += 1
                logger.warning("pin_discovery_failed", identifier=identifier, error=str(e))
                if len(report.errors) < ERRORS_KEPT:
                    report.errors.append(f"{identifier}: {e}")

        if report.added or report.failed:
            self.events.record(
                "pin_discovery",
                f"Discovered {report.added} new pins ({report.scanned} scanned, "
                f"{report.failed} failed)",
                severity=EventSeverity.warning if report.failed else EventSeverity.info,
                metadata=report.to_dict(),
            )
        if report.added:
            await self.notifier.notify_pins_discovered(report.added, report.scanned)

        return report
