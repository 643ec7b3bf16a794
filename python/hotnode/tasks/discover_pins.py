"""Hourly reconciliation of the storage node's pin set into the registry."""

from hotnode.celery import celery_app
from hotnode.tasks.runner import run_worker_task


@celery_app.task(bind=True, max_retries=0, name="discover_pins")
def discover_pins(self) -> dict:
    """Run the discovery worker once. Retried by the next scheduled run, never inline."""
    return run_worker_task("discovery", "discover_pins", self.request.id)
