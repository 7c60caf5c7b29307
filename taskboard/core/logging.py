"""Observability wiring built on Pydantic Logfire.

Modules log through ``logging.getLogger(__name__)``; once ``configure_logfire``
has run, Logfire picks those records up along with their ``extra`` fields.
"""

import logging

import logfire
from fastapi import FastAPI

from taskboard.core.config import settings


logger = logging.getLogger(__name__)


def configure_logfire() -> None:
    """Configure Logfire; without a token nothing leaves the process."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="taskboard",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logger.info("Logfire configured", extra={"environment": settings.environment})


def instrument_fastapi(app: FastAPI) -> None:
    """Trace every request handled by the app."""
    logfire.instrument_fastapi(app)


def span(name: str, **attributes: object) -> logfire.LogfireSpan:
    """Open a Logfire span, e.g. ``with span("workflow.approve_task"):``."""
    return logfire.span(name, **attributes)


def log_task_event(
    log: logging.Logger,
    message: str,
    *,
    task_id: str,
    actor_id: str,
    level: int = logging.INFO,
    **extra: object,
) -> None:
    """Log a change to a task with the task and acting user attached."""
    log.log(level, message, extra={"task_id": task_id, "actor_id": actor_id, **extra})
