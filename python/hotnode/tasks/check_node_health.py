"""Probe the storage daemon and alert when its online state changes."""

from hotnode.celery import celery_app
from hotnode.tasks.runner import run_worker_task


@celery_app.task(bind=True, max_retries=0, name="check_node_health")
def check_node_health(self) -> dict:
    return run_worker_task("node_health", "check_node_health", self.request.id)
