"""
Structured logging for resguard.

Guards log every rejection with the limit that was hit and the value that
was observed, so that a flood of hostile input shows up as a stream of
structured events rather than a stack trace.  Logging volume itself is a
resource: ``configure_logging(max_events_per_second=...)`` installs a
throttling processor backed by a token bucket so an attacker cannot turn
rejected requests into unbounded log growth.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None,
                          service="resguard", max_events_per_second=None)
            ↓
        structlog processor chain:
          1. TimeStamper(iso)
          2. throttle (optional, drops events over budget)
          3. merge_contextvars, add_log_level
          4. service metadata
          5. ECS field names + JSONRenderer, or ConsoleRenderer

Examples:
    >>> from resguard.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> logger.warning("admission_rejected", limit=100, observed=120)

Guardrails:
    - Never log the rejected payload itself, only its size
    - Dropped events are counted on the limiter, not logged

Tags:
    logging, structlog, observability, throttling, resguard

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from resguard.execution.rate_limit import RateLimiter, TokenBucketLimiter

# Events at these levels are never throttled
_UNTHROTTLED = frozenset({"error", "critical", "exception"})

# structlog key -> ECS field name
_ECS_FIELDS = {
    "timestamp": "@timestamp",
    "level": "log.level",
    "logger_name": "log.logger",
}


def _service_metadata(service: str) -> Processor:
    def _add(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", service)
        return event_dict

    return _add


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename structlog's standard keys to their Elasticsearch/ECS names."""
    for key, ecs_key in _ECS_FIELDS.items():
        if key in event_dict:
            event_dict[ecs_key] = event_dict.pop(key)
    return event_dict


def throttle_processor(limiter: RateLimiter) -> Processor:
    """Build a processor that drops events once ``limiter`` runs dry.

    Errors and above always pass so that a throttled service still reports
    its own failures.
    """

    def _throttle(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        if method_name not in _UNTHROTTLED and not limiter.acquire():
            raise structlog.DropEvent
        return event_dict

    return _throttle


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "resguard",
    add_timestamp: bool = True,
    max_events_per_second: float | None = None,
    stream: TextIO | None = None,
) -> RateLimiter | None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
        max_events_per_second: Sustained log event budget; bursts up to
            twice this value. None disables throttling.
        stream: Where rendered events go (default stdout)

    Returns:
        The throttling limiter, whose ``denied`` counts dropped events,
        or None when throttling is off.
    """
    out = stream or sys.stdout
    if json_format is None:
        json_format = not out.isatty()
    numeric_level = getattr(logging, level.upper())

    processors: list[Processor] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    limiter: RateLimiter | None = None
    if max_events_per_second is not None:
        limiter = TokenBucketLimiter(rate=max_events_per_second, capacity=max_events_per_second * 2)
        # Dropped events skip every processor after this one
        processors.append(throttle_processor(limiter))

    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _service_metadata(service),
    ]
    if json_format:
        processors += [_ecs_field_names, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=out.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        # Module-level loggers are created before configure_logging runs
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=out, level=numeric_level)
    return limiter


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``).

    The name travels as the ``logger_name`` key (``log.logger`` in JSON); print
    loggers have no name of their own.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind keys for the duration of a ``with`` block.

    Example:
        with LogContext(operation="inspect_zip", resource="upload.zip"):
            logger.info("entry_checked")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "throttle_processor",
    "LogContext",
]
