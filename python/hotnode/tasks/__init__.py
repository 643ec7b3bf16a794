"""Celery tasks for the hot node.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.

Usage in worker:
    from hotnode.tasks import migrate_pins

Usage for a manual run:
    from hotnode.tasks import migrate_pins
    migrate_pins.apply_async(queue="hotnode")
"""

from hotnode.tasks.check_node_health import check_node_health
from hotnode.tasks.cleanup_pins import cleanup_pins
from hotnode.tasks.discover_pins import discover_pins
from hotnode.tasks.migrate_pins import migrate_pins
from hotnode.tasks.prune_stats import prune_stats
from hotnode.tasks.validate_pins import validate_pins

__all__ = [
    "check_node_health",
    "cleanup_pins",
    "discover_pins",
    "migrate_pins",
    "prune_stats",
    "validate_pins",
]
