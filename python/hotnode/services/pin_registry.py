"""Pin registry: the durable source of truth for orchestration decisions.

Every method opens its own session and commits before returning. Callers
never hold a session across a network call, so each field update is a
discrete, independent write.

Age semantics:
    age(pin) = now - discovered_at, computed at query time from the clock.
    "age >= N days" is evaluated as discovered_at <= now - N days.

Forward-only guards (update_fields):
    status   pending -> accepted | rejected
    migrated false -> true (never for a rejected pin)
    unpinned false -> true
    retry_count never decreases
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from hotnode.db.models import Pin, PinStatus, as_utc, utcnow
from hotnode.errors import InvalidTransitionError, PinNotFoundError
from hotnode.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]

_SECONDS_PER_DAY = 86400
_IDENTIFIER_CHUNK = 500

UPDATABLE_FIELDS = frozenset(
    {
        "size_bytes",
        "status",
        "migrated",
        "migrated_at",
        "unpinned",
        "unpinned_at",
        "retry_count",
        "last_retry_at",
        "note",
    }
)


@dataclass(frozen=True)
class OverdueReport:
    """Accepted pins that should have been migrated by now."""

    count: int
    oldest_age_days: int


@dataclass(frozen=True)
class PinCounts:
    total: int
    pending: int
    accepted: int
    pending_migration: int
    migrated: int
    unpinned: int
    rejected: int
    overdue: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "accepted": self.accepted,
            "pending_migration": self.pending_migration,
            "migrated": self.migrated,
            "unpinned": self.unpinned,
            "rejected": self.rejected,
            "overdue": self.overdue,
        }


def _insert_ignoring_duplicates(dialect_name: str, values: dict[str, Any]):
    """Build INSERT ... ON CONFLICT (identifier) DO NOTHING for the dialect."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        return pg_insert(Pin).values(**values).on_conflict_do_nothing(
            index_elements=[Pin.identifier]
        )
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        return sqlite_insert(Pin).values(**values).on_conflict_do_nothing(
            index_elements=[Pin.identifier]
        )
    return None


class PinRegistry:
    """Pin registry bound to a session factory and a clock.

    Args:
        session_factory: sessionmaker producing sessions on the registry database.
        clock: Returns the current timezone-aware time. Injected for tests.
    """

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def age_days(self, pin: Pin, now: datetime | None = None) -> float:
        """Fractional age of a pin in days."""
        now = now or self.now()
        return (now - as_utc(pin.discovered_at)).total_seconds() / _SECONDS_PER_DAY

    def _cutoff(self, days: int, now: datetime | None = None) -> datetime:
        return (now or self.now()) - timedelta(days=days)

    # -------------------------------------------------------------------------
    # Single-row operations
    # -------------------------------------------------------------------------

    def insert_if_absent(
        self,
        identifier: str,
        *,
        size_bytes: int | None = None,
        note: str | None = None,
    ) -> bool:
        """Insert a new pending pin. No-op if the identifier is already tracked.

        Returns:
            True if a row was created.
        """
        values = {
            "identifier": identifier,
            "discovered_at": self.now(),
            "size_bytes": size_bytes,
            "status": PinStatus.pending,
            "migrated": False,
            "unpinned": False,
            "retry_count": 0,
            "note": note,
        }

        with self._session_factory() as db:
            stmt = _insert_ignoring_duplicates(db.get_bind().dialect.name, values)
            if stmt is not None:
                result = db.execute(stmt)
                db.commit()
                return result.rowcount == 1

            try:
                db.execute(insert(Pin).values(**values))
                db.commit()
            except IntegrityError:
                db.rollback()
                return False
            return True

    def get(self, identifier: str) -> Pin | None:
        with self._session_factory() as db:
            return db.scalar(select(Pin).where(Pin.identifier == identifier))

    def require(self, identifier: str) -> Pin:
        """Get a pin or raise PinNotFoundError."""
        pin = self.get(identifier)
        if pin is None:
            raise PinNotFoundError(identifier)
        return pin

    def existing_identifiers(self, identifiers: Iterable[str]) -> set[str]:
        """Return the subset of identifiers already tracked."""
        wanted = list(dict.fromkeys(identifiers))
        found: set[str] = set()
        with self._session_factory() as db:
            for start in range(0, len(wanted), _IDENTIFIER_CHUNK):
                chunk = wanted[start : start + _IDENTIFIER_CHUNK]
                found.update(
                    db.scalars(select(Pin.identifier).where(Pin.identifier.in_(chunk))).all()
                )
        return found

    def update_fields(self, identifier: str, **fields: Any) -> Pin:
        """Apply a partial update under the forward-only lifecycle guards.

        Setting migrated/unpinned to True stamps migrated_at/unpinned_at with
        the clock unless an explicit timestamp is given.

        Returns:
            The updated pin.

        Raises:
            PinNotFoundError: If the identifier is not tracked.
            InvalidTransitionError: If the update would reverse a transition.
            ValueError: If an unknown or immutable field is given.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update pin fields: {', '.join(sorted(unknown))}")

        with self._session_factory() as db:
            pin = db.scalar(select(Pin).where(Pin.identifier == identifier))
            if pin is None:
                raise PinNotFoundError(identifier)

            changes = self._guard_transition(pin, dict(fields))
            for key, value in changes.items():
                setattr(pin, key, value)
            db.commit()
            return pin

    def _guard_transition(self, pin: Pin, fields: dict[str, Any]) -> dict[str, Any]:
        now = self.now()
        target_status = pin.status

        if "status" in fields:
            new_status = PinStatus(fields["status"])
            if new_status != pin.status and pin.status != PinStatus.pending:
                raise InvalidTransitionError(
                    f"{pin.identifier}: status cannot move {pin.status.value} -> {new_status.value}"
                )
            if new_status == PinStatus.pending and pin.status != PinStatus.pending:
                raise InvalidTransitionError(f"{pin.identifier}: cannot return to pending")
            fields["status"] = new_status
            target_status = new_status

        if "migrated" in fields:
            if pin.migrated and not fields["migrated"]:
                raise InvalidTransitionError(f"{pin.identifier}: migrated cannot be cleared")
            if fields["migrated"] and target_status == PinStatus.rejected:
                raise InvalidTransitionError(
                    f"{pin.identifier}: rejected pins cannot be marked migrated"
                )
            if fields["migrated"] and not pin.migrated:
                fields.setdefault("migrated_at", now)

        if "unpinned" in fields:
            if pin.unpinned and not fields["unpinned"]:
                raise InvalidTransitionError(f"{pin.identifier}: unpinned cannot be cleared")
            if fields["unpinned"] and not pin.unpinned:
                fields.setdefault("unpinned_at", now)

        if "retry_count" in fields and fields["retry_count"] < pin.retry_count:
            raise InvalidTransitionError(f"{pin.identifier}: retry_count cannot decrease")

        return fields

    def resolve_pending(self, identifier: str, status: PinStatus) -> bool:
        """Move a pending pin to accepted or rejected.

        The update only applies while the pin is still pending.

        Returns:
            False if the pin is absent or already left pending.
        """
        if status == PinStatus.pending:
            raise InvalidTransitionError(f"{identifier}: cannot resolve to pending")
        with self._session_factory() as db:
            result = db.execute(
                update(Pin)
                .where(Pin.identifier == identifier, Pin.status == PinStatus.pending)
                .values(status=status)
            )
            db.commit()
            return result.rowcount == 1

    def record_retry(self, identifier: str, note: str) -> int:
        """Atomically bump retry_count after a failed migration attempt.

        Returns:
            The new retry count.
        """
        with self._session_factory() as db:
            result = db.execute(
                update(Pin)
                .where(Pin.identifier == identifier)
                .values(
                    retry_count=Pin.retry_count + 1,
                    last_retry_at=self.now(),
                    note=note,
                )
            )
            if result.rowcount == 0:
                db.rollback()
                raise PinNotFoundError(identifier)
            db.commit()
            return db.scalar(select(Pin.retry_count).where(Pin.identifier == identifier))

    def delete(self, identifier: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(delete(Pin).where(Pin.identifier == identifier))
            db.commit()
            return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Selections (always oldest-first)
    # -------------------------------------------------------------------------

    def select(
        self,
        *,
        status: PinStatus | None = None,
        migrated: bool | None = None,
        unpinned: bool | None = None,
        min_age_days: int | None = None,
        older_than_days: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Pin]:
        """Select pins matching all given filters, oldest discovered first.

        Args:
            min_age_days: age >= N days (inclusive).
            older_than_days: age > N days (strict).
        """
        now = self.now()
        stmt = select(Pin)
        if status is not None:
            stmt = stmt.where(Pin.status == status)
        if migrated is not None:
            stmt = stmt.where(Pin.migrated.is_(migrated))
        if unpinned is not None:
            stmt = stmt.where(Pin.unpinned.is_(unpinned))
        if min_age_days is not None:
            stmt = stmt.where(Pin.discovered_at <= self._cutoff(min_age_days, now))
        if older_than_days is not None:
            stmt = stmt.where(Pin.discovered_at < self._cutoff(older_than_days, now))
        stmt = stmt.order_by(Pin.discovered_at.asc(), Pin.id.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session_factory() as db:
            return list(db.scalars(stmt).all())

    def pending(self, limit: int | None = None) -> list[Pin]:
        return self.select(status=PinStatus.pending, limit=limit)

    def eligible_for_migration(self, start_after_days: int, limit: int) -> list[Pin]:
        """Accepted, unmigrated pins aged >= start_after_days."""
        return self.select(
            status=PinStatus.accepted,
            migrated=False,
            min_age_days=start_after_days,
            limit=limit,
        )

    def migrated_for_cleanup(self, delete_after_days: int, limit: int | None = None) -> list[Pin]:
        """Migrated, still locally pinned pins aged >= delete_after_days."""
        return self.select(
            migrated=True,
            unpinned=False,
            min_age_days=delete_after_days,
            limit=limit,
        )

    def rejected_for_cleanup(self, retention_days: int, limit: int | None = None) -> list[Pin]:
        """Rejected pins aged >= retention_days."""
        return self.select(status=PinStatus.rejected, min_age_days=retention_days, limit=limit)

    def overdue(self, threshold_days: int) -> OverdueReport:
        """Accepted, unmigrated pins strictly older than threshold_days."""
        now = self.now()
        stmt = select(func.count(Pin.id), func.min(Pin.discovered_at)).where(
            Pin.status == PinStatus.accepted,
            Pin.migrated.is_(False),
            Pin.discovered_at < self._cutoff(threshold_days, now),
        )
        with self._session_factory() as db:
            count, oldest = db.execute(stmt).one()

        if not count:
            return OverdueReport(count=0, oldest_age_days=0)
        oldest_age = (now - as_utc(oldest)).total_seconds() / _SECONDS_PER_DAY
        return OverdueReport(count=count, oldest_age_days=int(oldest_age))

    def counts(self, overdue_days: int = 7) -> PinCounts:
        cutoff = self._cutoff(overdue_days)
        accepted = Pin.status == PinStatus.accepted
        stmt = select(
            func.count(Pin.id),
            func.sum(case((Pin.status == PinStatus.pending, 1), else_=0)),
            func.sum(case((accepted, 1), else_=0)),
            func.sum(case((accepted & Pin.migrated.is_(False), 1), else_=0)),
            func.sum(case((Pin.migrated.is_(True), 1), else_=0)),
            func.sum(case((Pin.unpinned.is_(True), 1), else_=0)),
            func.sum(case((Pin.status == PinStatus.rejected, 1), else_=0)),
            func.sum(
                case(
                    (accepted & Pin.migrated.is_(False) & (Pin.discovered_at < cutoff), 1),
                    else_=0,
                )
            ),
        )
        with self._session_factory() as db:
            row = db.execute(stmt).one()

        values = [int(v or 0) for v in row]
        return PinCounts(*values)
