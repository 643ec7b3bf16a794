"""Retention pruning for daily aggregates and the audit event log.

Runs daily. Aggregate rows older than STATS_RETENTION_DAYS and events older
than EVENTS_RETENTION_DAYS are deleted. The pins table is never pruned here.
"""

from hotnode.celery import celery_app
from hotnode.config import get_settings
from hotnode.db.session import get_session_factory
from hotnode.logging import clear_task_context, configure_task_logging, get_logger
from hotnode.services.events import EventLog
from hotnode.services.stats import StatsRecorder

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="prune_stats")
def prune_stats(self) -> dict:
    configure_task_logging("prune_stats", self.request.id)
    try:
        return prune_retention()
    finally:
        clear_task_context()


def prune_retention(session_factory=None) -> dict:
    """Delete expired aggregates and events.

    Returns:
        Dict with counts of deleted aggregate and event rows.
    """
    settings = get_settings()
    session_factory = session_factory or get_session_factory()

    stats_deleted = StatsRecorder(session_factory).prune(settings.stats_retention_days)
    events_deleted = EventLog(session_factory).prune(settings.events_retention_days)

    logger.info(
        "prune_stats_completed",
        stats_deleted=stats_deleted,
        events_deleted=events_deleted,
    )
    return {"stats_deleted": stats_deleted, "events_deleted": events_deleted}
