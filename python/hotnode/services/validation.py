"""Validation worker: move pending pins to accepted or rejected.

All pending pins are validated oldest-first, in batches, within a single
source session. A batch is applied only once the source has returned a
verdict for every identifier in it; a source failure ends the run and the
unapplied pins stay pending for the next run.
"""

from dataclasses import dataclass

from hotnode.db.models import PinStatus
from hotnode.logging import get_logger
from hotnode.services.events import EventLog
from hotnode.services.notifications import Notifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.validation_sources import ValidationSource
from hotnode.services.worker import Report, Worker

logger = get_logger(__name__)


@dataclass
class ValidationReport(Report):
    validated: int = 0
    accepted: int = 0
    rejected: int = 0
    skipped: int = 0
    method: str = ""


class ValidationWorker(Worker):
    name = "cid_validation"

    def __init__(
        self,
        *,
        registry: PinRegistry,
        source: ValidationSource,
        events: EventLog,
        notifier: Notifier,
        batch_size: int = 500,
    ):
        super().__init__(registry=registry, events=events, notifier=notifier)
        self.source = source
        self.batch_size = batch_size

    async def execute(self) -> ValidationReport:
        report = ValidationReport(method=self.source.method)
        pending = [pin.identifier for pin in self.registry.pending()]
        if not pending:
            logger.info("validation_nothing_pending")
            return report

        logger.info("validation_started", pending=len(pending), method=self.source.method)
        async with self.source.session() as session:
            for start in range(0, len(pending), self.batch_size):
                batch = pending[start : start + self.batch_size]
                verdicts = await session.validate(batch)
                if len(verdicts) != len(batch):
                    raise ValueError(
                        f"Validation source returned {len(verdicts)} verdicts for {len(batch)} pins"
                    )
                self._apply(batch, verdicts, report)

        self.events.record(
            "cid_validation",
            f"Validated {report.validated} pins: {report.accepted} accepted, "
            f"{report.rejected} rejected ({report.method})",
            metadata=report.to_dict(),
        )
        return report

    def _apply(self, batch: list[str], verdicts: list[bool], report: ValidationReport) -> None:
        for identifier, valid in zip(batch, verdicts, strict=True):
            status = PinStatus.accepted if valid else PinStatus.rejected
            if not self.registry.resolve_pending(identifier, status):
                # Changed by another path since it was read as pending
                report.skipped += 1
                logger.info("validation_pin_skipped", identifier=identifier)
                continue

            report.validated += 1
            if valid:
                report.accepted += 1
                logger.info("pin_accepted", identifier=identifier)
            else:
                report.rejected += 1
                logger.warning("pin_rejected", identifier=identifier)
