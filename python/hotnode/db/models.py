"""SQLAlchemy ORM models for the hot node.

Defines the pin registry, the two daily aggregate tables and the audit
event log using SQLAlchemy 2.x declarative patterns. Column types are kept
portable so the same metadata runs on PostgreSQL and SQLite.
"""

from datetime import UTC, date, datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntegerPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# =============================================================================
# Enums
# =============================================================================


class PinStatus(str, PyEnum):
    """Validation outcome of a pin.

    States:
        pending: Discovered or manually added, not yet validated
        accepted: Authorized content, eligible for migration once aged
        rejected: Not authorized, reclaimed after the invalid retention window
    """

    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class EventSeverity(str, PyEnum):
    """Severity of an audit event."""

    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


# =============================================================================
# Models
# =============================================================================


class Pin(Base):
    """One tracked content identifier and its lifecycle state.

    status only moves pending -> accepted|rejected; migrated and unpinned only
    move false -> true. Rejected rows are deleted by cleanup, unpinned rows are
    retained for audit.
    """

    __tablename__ = "pins"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    discovered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[PinStatus] = mapped_column(
        Enum(PinStatus, name="pin_status", native_enum=False, length=16),
        nullable=False,
        default=PinStatus.pending,
        server_default=PinStatus.pending.value,
    )
    migrated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    migrated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unpinned: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    unpinned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_pins_status_discovered", "status", "discovered_at"),
        Index("idx_pins_migrated_discovered", "migrated", "unpinned", "discovered_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reports and the health surface."""
        return {
            "identifier": self.identifier,
            "discovered_at": _iso(self.discovered_at),
            "size_bytes": self.size_bytes,
            "status": self.status.value,
            "migrated": self.migrated,
            "migrated_at": _iso(self.migrated_at),
            "unpinned": self.unpinned,
            "unpinned_at": _iso(self.unpinned_at),
            "retry_count": self.retry_count,
            "last_retry_at": _iso(self.last_retry_at),
            "note": self.note,
        }


class MigrationStats(Base):
    """Daily rollup of migration worker runs."""

    __tablename__ = "migration_stats"

    stat_date: Mapped[date] = mapped_column(Date, primary_key=True)
    runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pins_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pins_succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pins_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pins_already_present: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bytes_migrated: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CleanupStats(Base):
    """Daily rollup of cleanup worker runs, including garbage collection."""

    __tablename__ = "cleanup_stats"

    stat_date: Mapped[date] = mapped_column(Date, primary_key=True)
    runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    migrated_pins_unpinned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invalid_pins_removed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bytes_freed_migrated: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bytes_freed_invalid: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    gc_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gc_duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gc_bytes_freed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    gc_errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Event(Base):
    """Append-only audit log row. Never read by orchestration logic."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[EventSeverity] = mapped_column(
        Enum(EventSeverity, name="event_severity", native_enum=False, length=16),
        nullable=False,
        default=EventSeverity.info,
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_events_type_created", "event_type", "created_at"),
        Index("idx_events_severity_created", "severity", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": _iso(self.created_at),
            "event_type": self.event_type,
            "severity": self.severity.value,
            "message": self.message,
            "metadata": self.event_metadata,
        }


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None
