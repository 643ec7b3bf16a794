"""Structured logging configuration using structlog.

Provides JSON-formatted logs with consistent context including:
- task_name / task_id: Celery task context
- worker: Name of the worker currently running (discovery, migration, ...)
- run_id: Correlation ID for one worker run
- request_id: Correlation ID for health-surface requests
- timestamp: ISO8601 formatted timestamp

Usage:
    from hotnode.logging import get_logger, configure_logging

    # Configure once at startup
    configure_logging()

    # Get a logger for a module
    logger = get_logger(__name__)
    logger.info("something_happened", identifier="Qm...")

Celery Task Logging:
    from hotnode.logging import configure_task_logging, get_logger

    @celery_app.task(bind=True)
    def my_task(self):
        configure_task_logging(task_name="my_task", task_id=self.request.id)
        logger.info("task_started")
"""

import logging
import sys
from contextvars import ContextVar

import structlog

# Context variables for run-scoped logging
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
task_name_var: ContextVar[str | None] = ContextVar("task_name", default=None)
task_id_var: ContextVar[str | None] = ContextVar("task_id", default=None)
worker_var: ContextVar[str | None] = ContextVar("worker", default=None)
run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)


def add_run_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Add task/worker context to all log entries.

    Injects all non-None ContextVar values into the log event dict.
    """
    for key, var in (
        ("request_id", request_id_var),
        ("task_name", task_name_var),
        ("task_id", task_id_var),
        ("worker", worker_var),
        ("run_id", run_id_var),
    ):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)

    return event_dict


def configure_logging(json_format: bool = True, level: str | int = logging.INFO) -> None:
    """Configure structlog for the process.

    Args:
        json_format: If True, output JSON logs. If False, output console-friendly logs.
        level: Root log level (name or number).
    """
    # Shared processors for both stdlib and structlog loggers
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_run_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to use structlog formatting
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for the given name.

    Args:
        name: Logger name (typically __name__).

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)


def set_request_id(request_id: str | None) -> None:
    """Set the request correlation ID for the current context."""
    request_id_var.set(request_id)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return request_id_var.get()


def configure_task_logging(
    task_name: str | None = None,
    task_id: str | None = None,
) -> None:
    """Configure logging context for a Celery task.

    Call this at the start of each Celery task to set up proper logging context.

    Args:
        task_name: The name of the Celery task.
        task_id: The Celery task ID (from self.request.id).
    """
    task_name_var.set(task_name)
    task_id_var.set(task_id)


def set_worker_context(worker: str | None, run_id: str | None) -> None:
    """Tag subsequent log entries with the running worker and run ID."""
    worker_var.set(worker)
    run_id_var.set(run_id)


def clear_task_context() -> None:
    """Clear task and worker context at the end of a task."""
    task_name_var.set(None)
    task_id_var.set(None)
    worker_var.set(None)
    run_id_var.set(None)
