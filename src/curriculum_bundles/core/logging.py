"""
Structured logging for bundle generation workers.

One logical bundle request is spread over many short, stateless invocations
(the orchestrator re-enqueues itself, children run on other workers), so
every event carries the identity of the invocation that emitted it:
``job_kind``, ``job_id``, ``initial_request_id`` and ``entity_id``. Filtering
on ``initial_request_id`` reconstructs a whole request.

Architecture:
    ::

        configure_logging(settings)          (once per worker process)
            │
            ▼
        merge_contextvars      ← LogContext / bind_context
        add_log_level, add_logger_name
        TimeStamper(iso)
        service name
        ┌─ JSON:    format_exc_info → ECS field names → JSONRenderer
        └─ console: ConsoleRenderer

Examples:
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> with LogContext(job_id="abc", initial_request_id="abc"):
    ...     logger.info("bundle_deferred", reason="outstanding_dependants")
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from .settings import BundleSettings

SERVICE_NAME = "curriculum-bundles"

# structlog key → Elastic Common Schema key
_ECS_FIELDS = {
    "timestamp": "@timestamp",
    "level": "log.level",
    "logger": "log.logger",
}


class _ServiceName:
    def __init__(self, service: str):
        self.service = service

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", self.service)
        return event_dict


def _rename_to_ecs(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key, ecs_key in _ECS_FIELDS.items():
        if key in event_dict:
            event_dict[ecs_key] = event_dict.pop(key)
    return event_dict


def configure_logging(
    settings: BundleSettings | None = None,
    *,
    level: str | None = None,
    json_format: bool | None = None,
    service: str = SERVICE_NAME,
) -> None:
    """Configure structlog (and stdlib logging for botocore / redis).

    Args:
        settings: Source of ``log_level`` and ``log_json``; explicit arguments win
        level: Log level name
        json_format: True for JSON, False for console, None for JSON unless stdout is a TTY
        service: Value of the ``service.name`` field
    """
    if settings is not None:
        level = level or settings.log_level
        json_format = settings.log_json if json_format is None else json_format
    numeric_level = getattr(logging, (level or "INFO").upper())
    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _ServiceName(service),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            _rename_to_ecs,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """``get_logger(__name__)`` in every module."""
    return structlog.get_logger(name)


def bind_context(**fields: Any) -> None:
    structlog.contextvars.bind_contextvars(**fields)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind invocation fields for the duration of a ``with`` block.

    ``None`` values are skipped. On exit every bound key goes back to the
    value it had before, so nested contexts (an orchestrator logging inside
    a worker's context) restore cleanly.

    Example:
        with LogContext(job_kind="document_pdf", job_id="abc123", entity_id=7):
            logger.info("child_artifact_completed")
    """

    def __init__(self, **fields: Any):
        self._fields = {key: value for key, value in fields.items() if value is not None}
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "SERVICE_NAME",
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
