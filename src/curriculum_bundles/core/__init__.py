"""Core primitives: errors, structured logging, settings."""

from .errors import (
    BundleDeadlineExceeded,
    BundleError,
    ConfigError,
    EntityNotFoundError,
    ErrorCategory,
    ErrorContext,
    HookNotImplementedError,
    LockTimeoutError,
    QueueError,
    RenderError,
    StorageError,
    is_retryable,
)
from .logging import LogContext, bind_context, clear_context, configure_logging, get_logger
from .settings import BundleSettings, get_settings

__all__ = [
    "BundleDeadlineExceeded",
    "BundleError",
    "BundleSettings",
    "ConfigError",
    "EntityNotFoundError",
    "ErrorCategory",
    "ErrorContext",
    "HookNotImplementedError",
    "LockTimeoutError",
    "LogContext",
    "QueueError",
    "RenderError",
    "StorageError",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_settings",
    "is_retryable",
]
