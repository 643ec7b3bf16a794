"""Worker base class and run boundary.

A worker run is one invocation of execute(). run() wraps it so that no
exception escapes: failures are logged, written to the event log as
error-severity events and raised as best-effort alerts, then returned as a
failed RunResult. The scheduler keeps going and the next run proceeds
normally.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any
from uuid import uuid4

from hotnode.db.models import EventSeverity
from hotnode.errors import DependencyUnavailableError
from hotnode.logging import get_logger, set_worker_context
from hotnode.services.events import EventLog
from hotnode.services.notifications import Notifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.storage.node import StorageNodeBase

logger = get_logger(__name__)

ERRORS_KEPT = 5


class Report:
    """Mixin for report dataclasses."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RunResult:
    worker: str
    run_id: str
    ok: bool
    duration_ms: int
    report: dict[str, Any] | None = None
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Worker(ABC):
    """Base class for scheduled workers.

    Subclasses set `name` and implement execute(). Collaborators are passed in
    at construction; workers never reach for module-level singletons and never
    call one another.
    """

    name: str = "worker"

    def __init__(self, *, registry: PinRegistry, events: EventLog, notifier: Notifier):
        self.registry = registry
        self.events = events
        self.notifier = notifier

    @abstractmethod
    async def execute(self) -> Report:
        ...

    async def require_storage_node(self, storage_node: StorageNodeBase) -> None:
        """Abandon the run before touching any pin if the daemon is down."""
        if not await storage_node.is_running():
            await self.notifier.notify_daemon_down(f"{self.name} run abandoned")
            raise DependencyUnavailableError("IPFS daemon is not running")

    async def run(self) -> RunResult:
        run_id = uuid4().hex[:12]
        set_worker_context(self.name, run_id)
        start = time.monotonic()
        logger.info("worker_run_started")

        try:
            report = await self.execute()
        except DependencyUnavailableError as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error("worker_run_abandoned", error=e.message, duration_ms=duration_ms)
            self.events.record(
                self.name,
                f"Run abandoned: {e.message}",
                severity=EventSeverity.error,
                metadata={"run_id": run_id, "error_code": e.code.value},
            )
            return self._failed(run_id, duration_ms, e)
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.exception(
                "worker_run_failed",
                error_type=type(e).__name__,
                error=str(e),
                duration_ms=duration_ms,
            )
            self.events.record(
                self.name,
                f"Run failed: {type(e).__name__}: {e}",
                severity=EventSeverity.error,
                metadata={"run_id": run_id, "error_type": type(e).__name__},
            )
            await self.notifier.notify_run_failed(self.name, f"{type(e).__name__}: {e}")
            return self._failed(run_id, duration_ms, e)
        else:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info("worker_run_completed", duration_ms=duration_ms, **report.to_dict())
            return RunResult(
                worker=self.name,
                run_id=run_id,
                ok=True,
                duration_ms=duration_ms,
                report=report.to_dict(),
            )
        finally:
            set_worker_context(None, None)

    def _failed(self, run_id: str, duration_ms: int, error: Exception) -> RunResult:
        return RunResult(
            worker=self.name,
            run_id=run_id,
            ok=False,
            duration_ms=duration_ms,
            error=str(error),
            error_type=type(error).__name__,
        )
