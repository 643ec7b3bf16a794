"""Health and status snapshots for the HTTP surface."""

from typing import Any

from hotnode.config import Settings
from hotnode.db.models import utcnow
from hotnode.errors import DependencyUnavailableError, StorageNodeError
from hotnode.logging import get_logger
from hotnode.services.events import EventLog
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.validation_sources import ValidationSource
from hotnode.storage.node import StorageNodeBase

logger = get_logger(__name__)

RECENT_EVENTS = 10


async def health_snapshot(
    settings: Settings, storage_node: StorageNodeBase, registry: PinRegistry
) -> dict[str, Any]:
    """Readiness as seen by upload routing.

    Raises:
        DependencyUnavailableError: If the storage daemon does not respond.
    """
    if not await storage_node.is_running():
        logger.error("health_ipfs_down")
        raise DependencyUnavailableError("IPFS daemon not running")

    disk_usage_percent = 0.0
    try:
        disk_usage_percent = (await storage_node.repo_stat()).usage_percent
    except StorageNodeError as e:
        logger.warning("health_repo_stat_failed", error=e.message)

    counts = registry.counts(settings.cleanup_overdue_days)
    return {
        "enabled": settings.node_enabled,
        "timestamp": utcnow().isoformat(),
        "disk_usage_percent": round(disk_usage_percent),
        "disk_warning": disk_usage_percent >= settings.health_disk_warning_percent,
        "pins": {
            "total": counts.total,
            "pending_migration": counts.pending_migration,
            "overdue": counts.overdue,
        },
    }


async def status_snapshot(
    settings: Settings,
    storage_node: StorageNodeBase,
    registry: PinRegistry,
    events: EventLog,
    validation_source: ValidationSource,
) -> dict[str, Any]:
    """Detailed operator view. Daemon failures degrade to null sections."""
    node_info = None
    try:
        data = await storage_node.node_id()
        node_info = {"id": data.get("ID"), "agent_version": data.get("AgentVersion")}
    except StorageNodeError as e:
        logger.warning("status_node_id_failed", error=e.message)

    repo = None
    try:
        repo = (await storage_node.repo_stat()).to_dict()
    except StorageNodeError as e:
        logger.warning("status_repo_stat_failed", error=e.message)

    return {
        "hotnode": {
            "name": settings.hotnode_name,
            "node_type": settings.node_type.value,
            "enabled": settings.node_enabled,
        },
        "ipfs": node_info,
        "repo": repo,
        "pins": registry.counts(settings.cleanup_overdue_days).to_dict(),
        "migration": {
            "start_after_days": settings.migration_start_after_days,
            "delete_after_days": settings.migration_delete_after_days,
        },
        "validation": {
            "method": validation_source.method,
            "reachable": await validation_source.health_check(),
        },
        "recent_events": [event.to_dict() for event in events.recent(RECENT_EVENTS)],
    }
