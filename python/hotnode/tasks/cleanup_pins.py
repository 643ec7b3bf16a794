"""Reclaim migrated and rejected pins, then garbage-collect the storage node."""

from hotnode.celery import celery_app
from hotnode.tasks.runner import run_worker_task


@celery_app.task(bind=True, max_retries=0, name="cleanup_pins")
def cleanup_pins(self) -> dict:
    """Run the cleanup worker once. Retried by the next scheduled run, never inline."""
    return run_worker_task("cleanup", "cleanup_pins", self.request.id)
