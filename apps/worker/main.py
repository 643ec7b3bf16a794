"""Celery worker and beat entrypoint.

Worker: celery -A apps.worker.main:celery_app worker -Q hotnode --concurrency=1 --loglevel=info
Beat:   celery -A apps.worker.main:celery_app beat --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in the hotnode.tasks package - no autodiscovery.

Concurrency Notes:
- Run a single worker process per node with --concurrency=1. Workers tolerate
  overlapping runs, but serial runs keep request rates against the storage
  daemon and the replication target predictable.
"""

from celery.signals import worker_process_init

from hotnode.celery import celery_app, settings
from hotnode.logging import configure_logging, get_logger

# =============================================================================
# Task Registration (explicit imports - no autodiscovery)
# =============================================================================

from hotnode.tasks import (  # noqa: F401
    check_node_health,
    cleanup_pins,
    discover_pins,
    migrate_pins,
    prune_stats,
    validate_pins,
)

# =============================================================================
# Worker Lifecycle
# =============================================================================


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when the worker process starts."""
    configure_logging(json_format=settings.log_json, level=settings.log_level)
    logger = get_logger(__name__)
    logger.info(
        "celery_worker_started",
        queue="hotnode",
        node=settings.hotnode_name,
        node_type=settings.node_type.value,
    )


__all__ = ["celery_app"]
