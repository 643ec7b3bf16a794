"""Validate pending pins against the configured validation source."""

from hotnode.celery import celery_app
from hotnode.tasks.runner import run_worker_task


@celery_app.task(bind=True, max_retries=0, name="validate_pins")
def validate_pins(self) -> dict:
    """Run the validation worker once. Retried by the next scheduled run, never inline."""
    return run_worker_task("validation", "validate_pins", self.request.id)
