"""Outbound operator alerts.

Notifications are best-effort: delivery failures are logged and never
propagate to the worker that raised the alert. When no webhook is
configured the NullNotifier drops everything.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import httpx

from hotnode.logging import get_logger

logger = get_logger(__name__)

WEBHOOK_TIMEOUT_S = 5.0
MIGRATION_ERRORS_SHOWN = 10


class Color(int, Enum):
    BLUE = 3447003
    GREEN = 3066993
    YELLOW = 16776960
    ORANGE = 15105570
    RED = 15158332
    GRAY = 9807270


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    color: Color = Color.BLUE
    fields: list[tuple[str, str]] = field(default_factory=list)


def _format_bytes(num_bytes: int) -> str:
    gb = num_bytes / 1024**3
    if gb > 1:
        return f"{gb:.2f} GB"
    return f"{num_bytes / 1024**2:.2f} MB"


class Notifier(ABC):
    """Base notifier. Subclasses implement deliver(); everything else is shared."""

    @abstractmethod
    async def deliver(self, notification: Notification) -> None:
        ...

    async def send(self, notification: Notification) -> None:
        try:
            await self.deliver(notification)
        except Exception as e:
            logger.warning(
                "notification_failed",
                title=notification.title,
                error_type=type(e).__name__,
                error=str(e),
            )

    async def notify_pins_discovered(self, added: int, scanned: int) -> None:
        await self.send(
            Notification(
                "New Pins Discovered",
                f"{added} new pins are now tracked",
                Color.BLUE,
                [("Added", str(added)), ("Scanned", str(scanned))],
            )
        )

    async def notify_migration_errors(self, failed: list[str]) -> None:
        if not failed:
            return
        listed = "\n".join(failed[:MIGRATION_ERRORS_SHOWN])
        more = ""
        if len(failed) > MIGRATION_ERRORS_SHOWN:
            more = f"\n...and {len(failed) - MIGRATION_ERRORS_SHOWN} more"
        await self.send(
            Notification(
                "Migration Errors",
                f"{len(failed)} pins failed to migrate to supernode:\n```{listed}{more}```",
                Color.ORANGE,
                [("Total Failed", str(len(failed)))],
            )
        )

    async def notify_gc(self, duration_s: int, freed_bytes: int, error: str | None = None) -> None:
        if error:
            await self.send(
                Notification(
                    "Garbage Collection Failed",
                    f"GC failed after {duration_s}s: {error}",
                    Color.RED,
                )
            )
            return
        await self.send(
            Notification(
                "Garbage Collection Complete",
                "IPFS garbage collection has completed successfully",
                Color.GREEN,
                [("Duration", f"{duration_s}s"), ("Space Freed", _format_bytes(freed_bytes))],
            )
        )

    async def notify_overdue(self, count: int, oldest_age_days: int, threshold_days: int) -> None:
        await self.send(
            Notification(
                "Overdue Pins Detected",
                f"{count} pins are older than {threshold_days} days and have not been migrated",
                Color.RED,
                [("Overdue Count", str(count)), ("Oldest Pin Age", f"{oldest_age_days} days")],
            )
        )

    async def notify_daemon_down(self, error: str | None = None) -> None:
        detail = f"\n\nError: {error}" if error else ""
        await self.send(
            Notification(
                "IPFS Daemon Down",
                f"IPFS daemon is not responding!{detail}\n\nImmediate attention required.",
                Color.RED,
                [("Status", "Offline"), ("Action Required", "Check IPFS service")],
            )
        )

    async def notify_daemon_online(self) -> None:
        await self.send(
            Notification(
                "IPFS Daemon Online",
                "IPFS daemon is now running and accessible",
                Color.GREEN,
            )
        )

    async def notify_run_failed(self, worker: str, error: str) -> None:
        label = worker.replace("_", " ").title()
        await self.send(Notification(f"{label} Run Failed", error[:1000], Color.RED))


class NullNotifier(Notifier):
    async def deliver(self, notification: Notification) -> None:
        logger.debug("notification_skipped", title=notification.title)


class DiscordNotifier(Notifier):
    """Posts embeds to a Discord webhook."""

    def __init__(self, client: httpx.AsyncClient, webhook_url: str, node_name: str):
        self._client = client
        self._webhook_url = webhook_url
        self._node_name = node_name

    def build_payload(self, notification: Notification) -> dict:
        embed = {
            "title": notification.title,
            "description": notification.description,
            "color": notification.color.value,
            "timestamp": datetime.now(UTC).isoformat(),
            "footer": {"text": self._node_name},
        }
        if notification.fields:
            embed["fields"] = [
                {"name": name, "value": value, "inline": True}
                for name, value in notification.fields
            ]
        return {"embeds": [embed]}

    async def deliver(self, notification: Notification) -> None:
        response = await self._client.post(
            self._webhook_url,
            json=self.build_payload(notification),
            timeout=WEBHOOK_TIMEOUT_S,
        )
        response.raise_for_status()
        logger.info("notification_sent", title=notification.title)


class FakeNotifier(Notifier):
    """Collects notifications in memory for tests."""

    def __init__(self):
        self.sent: list[Notification] = []

    async def deliver(self, notification: Notification) -> None:
        self.sent.append(notification)

    def titles(self) -> list[str]:
        return [n.title for n in self.sent]
