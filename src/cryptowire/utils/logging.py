"""Structured logging configuration for cryptowire."""

import logging
import sys
from typing import Any

import structlog


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structured JSON logging for the pipeline and its API."""
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # apscheduler logs every job submission at INFO
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Note: Returns Any because structlog.get_logger() returns a dynamically
    configured logger type that varies based on setup_logging() configuration.
    """
    return structlog.get_logger(name)


def bind_run_context(run_id: str, trigger: str) -> None:
    """Attach the run identifiers to every log line emitted by the current task."""
    structlog.contextvars.bind_contextvars(run_id=run_id, trigger=trigger)


def clear_run_context() -> None:
    """Drop the identifiers bound by bind_run_context."""
    structlog.contextvars.unbind_contextvars("run_id", "trigger")
