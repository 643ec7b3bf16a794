"""Replicate aged, accepted pins to the replication target."""

from hotnode.celery import celery_app
from hotnode.tasks.runner import run_worker_task


@celery_app.task(bind=True, max_retries=0, name="migrate_pins")
def migrate_pins(self) -> dict:
    """Run the migration worker once. Retried by the next scheduled run, never inline."""
    return run_worker_task("migration", "migrate_pins", self.request.id)
