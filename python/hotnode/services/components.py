"""Explicit wiring of the hot node's collaborators.

Everything a worker needs is constructed here from Settings and passed in
at construction. There are no module-level adapter or registry singletons:
tasks, the health app and manual tooling each build a Components for the
duration of their work and close it afterwards.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from sqlalchemy.orm import Session, sessionmaker

from hotnode.config import NodeType, Settings
from hotnode.db.session import get_session_factory
from hotnode.services.cleanup import CleanupWorker
from hotnode.services.discovery import DiscoveryWorker
from hotnode.services.events import EventLog
from hotnode.services.migration import MigrationWorker
from hotnode.services.node_monitor import NodeHealthWorker
from hotnode.services.notifications import DiscordNotifier, Notifier, NullNotifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.stats import StatsRecorder
from hotnode.services.validation import ValidationWorker
from hotnode.services.validation_sources import (
    RemoteValidationSource,
    SqlAuthorizationSource,
    ValidationSource,
)
from hotnode.services.worker import Worker
from hotnode.storage.node import StorageNodeBase, StorageNodeClient
from hotnode.storage.target import ReplicationTargetBase, ReplicationTargetClient


@dataclass
class Components:
    settings: Settings
    registry: PinRegistry
    events: EventLog
    stats: StatsRecorder
    notifier: Notifier
    storage_node: StorageNodeBase
    target: ReplicationTargetBase
    validation_source: ValidationSource

    def discovery_worker(self) -> DiscoveryWorker:
        return DiscoveryWorker(
            registry=self.registry,
            storage_node=self.storage_node,
            events=self.events,
            notifier=self.notifier,
        )

    def validation_worker(self) -> ValidationWorker:
        return ValidationWorker(
            registry=self.registry,
            source=self.validation_source,
            events=self.events,
            notifier=self.notifier,
            batch_size=self.settings.validation_batch_size,
        )

    def migration_worker(self, **overrides) -> MigrationWorker:
        s = self.settings
        options = {
            "start_after_days": s.migration_start_after_days,
            "batch_size": s.migration_batch_size,
            "throttle_delay_ms": s.migration_throttle_delay_ms,
            "propagation_delay_ms": s.migration_propagation_delay_ms,
            "max_retries": s.migration_max_retries,
            **overrides,
        }
        return MigrationWorker(
            registry=self.registry,
            target=self.target,
            stats=self.stats,
            events=self.events,
            notifier=self.notifier,
            **options,
        )

    def cleanup_worker(self) -> CleanupWorker:
        s = self.settings
        return CleanupWorker(
            registry=self.registry,
            storage_node=self.storage_node,
            stats=self.stats,
            events=self.events,
            notifier=self.notifier,
            delete_after_days=s.migration_delete_after_days,
            invalid_retention_days=s.cleanup_invalid_retention_days,
            overdue_days=s.cleanup_overdue_days,
        )

    def node_health_worker(self) -> NodeHealthWorker:
        return NodeHealthWorker(
            registry=self.registry,
            storage_node=self.storage_node,
            events=self.events,
            notifier=self.notifier,
        )

    def worker(self, name: str) -> Worker:
        """Look up a worker by its scheduled name."""
        factories = {
            "discovery": self.discovery_worker,
            "validation": self.validation_worker,
            "migration": self.migration_worker,
            "cleanup": self.cleanup_worker,
            "node_health": self.node_health_worker,
        }
        if name not in factories:
            raise KeyError(f"Unknown worker: {name}")
        return factories[name]()


def build_validation_source(settings: Settings, client: httpx.AsyncClient) -> ValidationSource:
    if settings.node_type == NodeType.COMMUNITY:
        return RemoteValidationSource(
            client,
            settings.validation_server_url,
            timeout_s=settings.validation_timeout_s,
        )
    return SqlAuthorizationSource.from_url(
        settings.authz_database_url,
        table_name=settings.authz_table,
        identifier_column=settings.authz_identifier_column,
        legacy_table_name=settings.authz_legacy_table,
        legacy_url_column=settings.authz_legacy_url_column,
    )


@asynccontextmanager
async def open_components(
    settings: Settings,
    session_factory: sessionmaker[Session] | None = None,
) -> AsyncIterator[Components]:
    """Build production components sharing one HTTP client.

    The HTTP client and the validation source are closed on exit.
    """
    session_factory = session_factory or get_session_factory()

    async with httpx.AsyncClient() as client:
        notifier: Notifier = NullNotifier()
        if settings.notifications_enabled:
            notifier = DiscordNotifier(client, settings.discord_webhook_url, settings.hotnode_name)

        validation_source = build_validation_source(settings, client)
        components = Components(
            settings=settings,
            registry=PinRegistry(session_factory),
            events=EventLog(session_factory),
            stats=StatsRecorder(session_factory),
            notifier=notifier,
            storage_node=StorageNodeClient(
                client,
                settings.ipfs_api_url,
                timeout_s=settings.ipfs_timeout_s,
                gc_timeout_s=settings.cleanup_gc_timeout_minutes * 60,
            ),
            target=ReplicationTargetClient(
                client,
                settings.supernode_api,
                verify_timeout_s=settings.supernode_verify_timeout_s,
                base_timeout_s=settings.supernode_base_timeout_s,
                timeout_step_s=settings.supernode_timeout_step_s,
                max_timeout_s=settings.supernode_max_timeout_s,
            ),
            validation_source=validation_source,
        )
        try:
            yield components
        finally:
            await validation_source.aclose()
