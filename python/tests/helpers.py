"""Test helpers: a controllable clock, a recording sleep and pin seeding."""

from datetime import UTC, datetime, timedelta

from hotnode.config import Settings
from hotnode.db.models import Pin, PinStatus
from hotnode.services.pin_registry import PinRegistry

DEFAULT_START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Clock returning a fixed time until advanced."""

    def __init__(self, start: datetime = DEFAULT_START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, *, days: float = 0, hours: float = 0, seconds: float = 0) -> None:
        self.now += timedelta(days=days, hours=hours, seconds=seconds)


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides."""
    defaults = {
        "DATABASE_URL": "sqlite://",
        "HOTNODE_ENV": "test",
        "SUPERNODE_API": "http://supernode.test:5001",
        "AUTHZ_DATABASE_URL": "sqlite://",
        "MIGRATION_THROTTLE_DELAY_MS": 0,
        "MIGRATION_PROPAGATION_DELAY_MS": 0,
    }
    defaults.update(overrides)
    return Settings(**defaults)


def seed_pin(
    registry: PinRegistry,
    clock: "FakeClock",
    identifier: str,
    *,
    age_days: float = 0,
    status: PinStatus = PinStatus.pending,
    migrated: bool = False,
    unpinned: bool = False,
    size_bytes: int | None = 1024,
) -> Pin:
    """Insert a pin discovered age_days before the clock's current time."""
    now = clock.now
    clock.now = now - timedelta(days=age_days)
    try:
        registry.insert_if_absent(identifier, size_bytes=size_bytes)
    finally:
        clock.now = now

    if status != PinStatus.pending:
        registry.resolve_pending(identifier, status)
    if migrated:
        registry.update_fields(identifier, migrated=True)
    if unpinned:
        registry.update_fields(identifier, unpinned=True)
    return registry.require(identifier)
