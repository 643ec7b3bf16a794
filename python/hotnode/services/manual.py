"""Operator entry points.

Manual triggers reuse the same workers, registry and adapters as the
scheduled runs; there is no separate code path for single identifiers.
"""

from hotnode.db.models import Pin, PinStatus
from hotnode.errors import ErrorCode, InvalidTransitionError, StorageNodeError
from hotnode.logging import get_logger
from hotnode.services.components import Components
from hotnode.services.migration import PinMigrationOutcome
from hotnode.services.worker import RunResult
from hotnode.storage.target import VerificationResult

logger = get_logger(__name__)

NOTE_MANUALLY_ADDED = "Manually added"
NOTE_MANUALLY_UNPINNED = "Manually unpinned"
NOTE_MANUALLY_MIGRATED = "Manually marked as migrated"


class NodeOperations:
    def __init__(self, components: Components):
        self.components = components

    @property
    def registry(self):
        return self.components.registry

    async def run_discovery(self) -> RunResult:
        return await self.components.discovery_worker().run()

    async def run_validation(self) -> RunResult:
        return await self.components.validation_worker().run()

    async def run_migration(self) -> RunResult:
        return await self.components.migration_worker().run()

    async def run_cleanup(self) -> RunResult:
        return await self.components.cleanup_worker().run()

    async def add_pin(self, identifier: str) -> Pin:
        """Pin on the storage node and start tracking as pending.

        Raises:
            InvalidTransitionError: If the identifier was already released
                from this node; re-pinning it would undo cleanup.
        """
        existing = self.registry.get(identifier)
        if existing is not None and existing.unpinned:
            raise InvalidTransitionError(f"{identifier} was already unpinned from this node")

        await self.components.storage_node.pin_add(identifier)
        size = await self.components.storage_node.stat_object_size(identifier)
        if self.registry.insert_if_absent(identifier, size_bytes=size, note=NOTE_MANUALLY_ADDED):
            self.components.events.record(
                "manual_add",
                f"Manually added {identifier}",
                metadata={"identifier": identifier, "size_bytes": size},
            )
        logger.info("manual_pin_added", identifier=identifier, size_bytes=size)
        return self.registry.require(identifier)

    async def remove_pin(self, identifier: str) -> Pin:
        """Unpin from the storage node and flag the pin unpinned."""
        self.registry.require(identifier)
        try:
            await self.components.storage_node.pin_remove(identifier)
        except StorageNodeError as e:
            if e.code != ErrorCode.E_NODE_PIN_ABSENT:
                raise
        pin = self.registry.update_fields(identifier, unpinned=True, note=NOTE_MANUALLY_UNPINNED)
        self.components.events.record(
            "manual_unpin", f"Manually unpinned {identifier}", metadata={"identifier": identifier}
        )
        logger.info("manual_pin_removed", identifier=identifier)
        return pin

    async def force_migrate(self, identifier: str) -> PinMigrationOutcome:
        """Migrate one pin now, ignoring its age.

        Raises:
            InvalidTransitionError: If the pin was rejected by validation.
        """
        pin = self.registry.require(identifier)
        if pin.status == PinStatus.rejected:
            raise InvalidTransitionError(f"{identifier} is rejected and cannot be migrated")
        if pin.migrated:
            return PinMigrationOutcome(identifier, success=True, already_present=True)

        outcome = await self.components.migration_worker().migrate_one(pin)
        self.components.events.record(
            "manual_migration",
            f"Manual migration of {identifier}: {'ok' if outcome.success else 'failed'}",
            metadata={"identifier": identifier, "success": outcome.success, "error": outcome.error},
        )
        return outcome

    def mark_migrated(self, identifier: str) -> Pin:
        """Flag a pin migrated without contacting the target. Rejected pins are refused."""
        pin = self.registry.update_fields(identifier, migrated=True, note=NOTE_MANUALLY_MIGRATED)
        self.components.events.record(
            "manual_mark_migrated",
            f"Manually marked {identifier} as migrated",
            metadata={"identifier": identifier},
        )
        return pin

    async def check_target(self, identifier: str) -> VerificationResult:
        return await self.components.target.check(identifier)
