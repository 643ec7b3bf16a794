"""Append-only audit event log.

Writes are best-effort: a failure to record an event is logged and
swallowed so it never changes the outcome of the run that produced it.
"""

from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from hotnode.db.models import Event, EventSeverity, utcnow
from hotnode.logging import get_logger
from hotnode.services.pin_registry import Clock

logger = get_logger(__name__)


class EventLog:
    def __init__(self, session_factory: sessionmaker[Session], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def record(
        self,
        event_type: str,
        message: str,
        *,
        severity: EventSeverity = EventSeverity.info,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            with self._session_factory() as db:
                db.add(
                    Event(
                        created_at=self._clock(),
                        event_type=event_type,
                        severity=severity,
                        message=message,
                        event_metadata=metadata,
                    )
                )
                db.commit()
        except Exception as e:
            logger.error(
                "event_write_failed",
                event_type=event_type,
                error_type=type(e).__name__,
                error=str(e),
            )

    def recent(self, limit: int = 20, event_type: str | None = None) -> list[Event]:
        stmt = select(Event).order_by(Event.created_at.desc(), Event.id.desc()).limit(limit)
        if event_type:
            stmt = stmt.where(Event.event_type == event_type)
        with self._session_factory() as db:
            return list(db.scalars(stmt).all())

    def prune(self, older_than_days: int) -> int:
        """Delete events older than the retention window. Returns rows deleted."""
        cutoff = self._clock() - timedelta(days=older_than_days)
        with self._session_factory() as db:
            result = db.execute(delete(Event).where(Event.created_at < cutoff))
            db.commit()
            return result.rowcount
