"""
Structured logging for flow-spine.

Configures structlog once per process and hands out bound loggers. Every
publish unit binds ``workflow`` and ``run_id`` so interleaved log lines
from concurrently running units can be told apart.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="flow-spine")
            │
            ▼
        structlog processor chain:
          1. merge_contextvars      (workflow, run_id bound per unit)
          2. add_log_level
          3. TimeStamper(iso)
          4. add_service_metadata
          5. JSONRenderer (not a tty) or ConsoleRenderer (tty)

        logger = get_logger(__name__)
        logger.info("compile.injected", node="Code", key="greet")

Examples:
    >>> from flowspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> logger = get_logger(__name__)
    >>> with LogContext(workflow="flows/orders.json", run_id="abc123"):
    ...     logger.info("publish.started")

Tags:
    logging, structlog, observability, flow-spine
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

_SERVICE_NAME = "flow-spine"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "flow-spine",
) -> None:
    """Configure structured logging for the process.

    Log output goes to stderr so that command output on stdout (reports,
    ``--json`` payloads) stays machine-readable.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_service_metadata,
    ]

    if json_format:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # stderr can be swapped between CLI invocations in one process
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs of this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Each asyncio task runs in its own copy of the context, so a unit's
    bound ``workflow`` never leaks into a sibling unit.

    Example:
        with LogContext(workflow="flows/orders.json", run_id="abc123"):
            logger.info("publish.started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
