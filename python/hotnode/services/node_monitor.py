"""Storage daemon status monitor.

Probes the daemon on a schedule and compares the answer with the last
recorded state, which is the newest ipfs_status event. An event and an alert
are produced only when the state changes (online -> offline or back), so a
long outage raises one alert and its end raises one more.

The first observation on a fresh registry has no previous state and is
recorded as a change.
"""

from dataclasses import dataclass

from hotnode.db.models import EventSeverity
from hotnode.logging import get_logger
from hotnode.services.events import EventLog
from hotnode.services.notifications import Notifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.worker import Report, Worker
from hotnode.storage.node import StorageNodeBase

logger = get_logger(__name__)

STATUS_EVENT_TYPE = "ipfs_status"


@dataclass
class NodeHealthReport(Report):
    running: bool = False
    previously_running: bool | None = None
    changed: bool = False


class NodeHealthWorker(Worker):
    name = "node_health"

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

    def last_known_state(self) -> bool | None:
        latest = self.events.recent(1, event_type=STATUS_EVENT_TYPE)
        if not latest:
            return None
        return bool((latest[0].event_metadata or {}).get("running"))

    async def execute(self) -> NodeHealthReport:
        running = await self.storage_node.is_running()
        previous = self.last_known_state()
        report = NodeHealthReport(running=running, previously_running=previous)

        if previous is not None and previous == running:
            logger.debug("node_health_unchanged", running=running)
            return report

        report.changed = True
        if running:
            logger.info("node_health_online", previously_running=previous)
            self.events.record(
                STATUS_EVENT_TYPE,
                "IPFS daemon came online",
                severity=EventSeverity.info,
                metadata={"running": True},
            )
            await self.notifier.notify_daemon_online()
        else:
            logger.error("node_health_offline", previously_running=previous)
            self.events.record(
                STATUS_EVENT_TYPE,
                "IPFS daemon went offline",
                severity=EventSeverity.critical,
                metadata={"running": False},
            )
            await self.notifier.notify_daemon_down()
        return report
