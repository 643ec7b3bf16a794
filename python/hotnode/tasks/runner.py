"""Shared body of the worker tasks.

Builds components for the duration of one run, drives the worker coroutine
to completion and returns its RunResult as a dict. Worker failures are
already turned into a failed RunResult at the run boundary; anything raised
here (bad configuration, registry unreachable while wiring) is logged and
re-raised so Celery records the task as failed.
"""

import asyncio

from hotnode.config import get_settings
from hotnode.logging import clear_task_context, configure_task_logging, get_logger
from hotnode.services.components import open_components

logger = get_logger(__name__)


async def _run_worker(worker_name: str) -> dict:
    async with open_components(get_settings()) as components:
        result = await components.worker(worker_name).run()
    return result.to_dict()


def run_worker_task(worker_name: str, task_name: str, task_id: str | None) -> dict:
    configure_task_logging(task_name, task_id)
    logger.info("task_started", worker=worker_name)
    try:
        result = asyncio.run(_run_worker(worker_name))
    except Exception as e:
        logger.exception("task_failed", error_type=type(e).__name__, error=str(e))
        raise
    else:
        logger.info("task_completed", ok=result["ok"], duration_ms=result["duration_ms"])
        return result
    finally:
        clear_task_context()
