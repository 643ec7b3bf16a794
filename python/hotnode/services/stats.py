"""Daily aggregate rollups for migration and cleanup runs.

Each run adds its counters to the row for the current UTC date:

    INSERT ... ON CONFLICT (stat_date) DO UPDATE SET col = col + excluded.col

so concurrent runs on the same day accumulate instead of overwriting.
"""

from datetime import date, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from hotnode.db.models import Base, CleanupStats, MigrationStats, utcnow
from hotnode.db.session import transaction
from hotnode.logging import get_logger
from hotnode.services.pin_registry import Clock

logger = get_logger(__name__)


def _upsert_statement(dialect_name: str, model: type[Base], values: dict, counters: list[str]):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None

    table = model.__table__
    stmt = insert(table).values(**values)
    set_ = {name: table.c[name] + stmt.excluded[name] for name in counters}
    set_["updated_at"] = stmt.excluded.updated_at
    return stmt.on_conflict_do_update(index_elements=[table.c.stat_date], set_=set_)


class StatsRecorder:
    def __init__(self, session_factory: sessionmaker[Session], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    def _accumulate(self, model: type[Base], counters: dict[str, int]) -> None:
        now = self._clock()
        values = {"stat_date": now.date(), "updated_at": now, **counters}

        with self._session_factory() as db:
            stmt = _upsert_statement(db.get_bind().dialect.name, model, values, list(counters))
            if stmt is not None:
                db.execute(stmt)
            else:
                row = db.get(model, now.date())
                if row is None:
                    db.add(model(**values))
                else:
                    for name, amount in counters.items():
                        setattr(row, name, getattr(row, name) + amount)
                    row.updated_at = now
            db.commit()

    def record_migration(
        self,
        *,
        processed: int,
        succeeded: int,
        failed: int,
        already_present: int,
        bytes_migrated: int,
    ) -> None:
        self._accumulate(
            MigrationStats,
            {
                "runs": 1,
                "pins_processed": processed,
                "pins_succeeded": succeeded,
                "pins_failed": failed,
                "pins_already_present": already_present,
                "bytes_migrated": bytes_migrated,
            },
        )

    def record_cleanup(
        self,
        *,
        migrated_unpinned: int,
        invalid_removed: int,
        bytes_freed_migrated: int,
        bytes_freed_invalid: int,
        gc_ran: bool,
        gc_duration_seconds: int,
        gc_bytes_freed: int,
        gc_failed: bool,
    ) -> None:
        self._accumulate(
            CleanupStats,
            {
                "runs": 1,
                "migrated_pins_unpinned": migrated_unpinned,
                "invalid_pins_removed": invalid_removed,
                "bytes_freed_migrated": bytes_freed_migrated,
                "bytes_freed_invalid": bytes_freed_invalid,
                "gc_runs": int(gc_ran),
                "gc_duration_seconds": gc_duration_seconds,
                "gc_bytes_freed": gc_bytes_freed,
                "gc_errors": int(gc_failed),
            },
        )

    def migration_for(self, stat_date: date) -> MigrationStats | None:
        with self._session_factory() as db:
            return db.get(MigrationStats, stat_date)

    def cleanup_for(self, stat_date: date) -> CleanupStats | None:
        with self._session_factory() as db:
            return db.get(CleanupStats, stat_date)

    def recent_migration(self, days: int = 7) -> list[MigrationStats]:
        since = self.today() - timedelta(days=days)
        stmt = (
            select(MigrationStats)
            .where(MigrationStats.stat_date > since)
            .order_by(MigrationStats.stat_date.desc())
        )
        with self._session_factory() as db:
            return list(db.scalars(stmt).all())

    def prune(self, retention_days: int) -> int:
        """Delete aggregate rows older than the retention window. Returns rows deleted."""
        cutoff = self.today() - timedelta(days=retention_days)
        deleted = 0
        with self._session_factory() as db, transaction(db):
            for model in (MigrationStats, CleanupStats):
                result = db.execute(delete(model).where(model.stat_date < cutoff))
                deleted += result.rowcount

        logger.info("stats_pruned", retention_days=retention_days, rows_deleted=deleted)
        return deleted
