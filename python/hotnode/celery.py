"""Celery application configuration.

Central configuration for Celery used by the worker, the beat scheduler and
any process that enqueues a manual run.

Each hot node worker is a beat entry with a cron expression from settings.
Runs execute on the "hotnode" queue; start the worker with --concurrency=1
so two runs of the same worker never overlap on one node.

Usage:
    from hotnode.celery import celery_app

    # Enqueue a manual run:
    celery_app.send_task("migrate_pins")
"""

from celery import Celery
from celery.schedules import crontab

from hotnode.config import Settings, get_settings


def crontab_from_expression(expression: str) -> crontab:
    """Build a celery crontab from a five-field cron expression."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Expected 5 cron fields, got {len(fields)}: {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


def build_beat_schedule(settings: Settings) -> dict:
    schedules = {
        "discover_pins": settings.discovery_schedule,
        "validate_pins": settings.validation_schedule,
        "migrate_pins": settings.migration_schedule,
        "cleanup_pins": settings.cleanup_gc_schedule,
        "prune_stats": settings.stats_prune_schedule,
        "check_node_health": settings.node_health_schedule,
    }
    return {
        f"{task_name}-schedule": {
            "task": task_name,
            "schedule": crontab_from_expression(expression),
        }
        for task_name, expression in schedules.items()
    }


settings = get_settings()

# Create Celery app
celery_app = Celery("hotnode")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

celery_app.conf.task_routes = {
    "discover_pins": {"queue": "hotnode"},
    "validate_pins": {"queue": "hotnode"},
    "migrate_pins": {"queue": "hotnode"},
    "cleanup_pins": {"queue": "hotnode"},
    "prune_stats": {"queue": "hotnode"},
    "check_node_health": {"queue": "hotnode"},
}
celery_app.conf.task_default_queue = "hotnode"

celery_app.conf.beat_schedule = build_beat_schedule(settings)

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False


def get_celery_app() -> Celery:
    """Get the Celery application instance.

    Returns:
        Configured Celery application.
    """
    return celery_app
