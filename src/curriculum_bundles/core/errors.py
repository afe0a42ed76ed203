"""
Structured error types for curriculum bundle generation.

Every failure raised inside a job carries a category, a retry flag and the
identity of the invocation that raised it (job kind, job id, logical request
id, entity id). The worker decides on retries from the flag, the monitoring
sink reports ``to_dict()``, and child jobs store ``str(error)`` next to the
entity's link.

Hierarchy::

    BundleError                       category          retried
    ├── ConfigError                   CONFIG            no
    ├── HookNotImplementedError       PROGRAMMER        never, not recorded
    ├── QueueError                    QUEUE             no
    ├── EntityNotFoundError           HIERARCHY         no
    ├── RenderError                   RENDER            yes
    ├── StorageError                  STORAGE           yes
    ├── LockTimeoutError              LOCK              yes
    └── BundleDeadlineExceeded        ORCHESTRATION     no

A deferral is not an error: an orchestrator that finds outstanding work
re-enqueues itself and returns normally.

Usage:
    from curriculum_bundles.core.errors import RenderError

    try:
        pdf = renderer.export_pdf(presenter, options)
    except OSError as e:
        raise RenderError("Renderer unreachable", cause=e).with_context(
            entity_id=presenter.id
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Which part of the pipeline failed."""

    CONFIG = "CONFIG"
    PROGRAMMER = "PROGRAMMER"
    QUEUE = "QUEUE"
    HIERARCHY = "HIERARCHY"
    RENDER = "RENDER"
    STORAGE = "STORAGE"
    LOCK = "LOCK"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Invocation identity attached to an error.

    ``extra`` collects anything that is not one of the named fields
    (storage keys, folder ids).
    """

    job_kind: str | None = None
    job_id: str | None = None
    initial_request_id: str | None = None
    entity_id: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.extra

    def update(self, **values: Any) -> None:
        named = {f.name for f in fields(self)} - {"extra"}
        for key, value in values.items():
            if key in named:
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def to_dict(self) -> dict[str, Any]:
        data = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        return {**data, **self.extra}


class BundleError(Exception):
    """
    Root of the bundle generation errors.

    Subclasses pick their category and retry default through class
    attributes; both can be overridden per instance.

    Examples:
        >>> BundleError("Something went wrong").category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> RenderError("down").with_context(entity_id=42).context.entity_id
        42
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category if category is not None else self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context if context is not None else ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **values: Any) -> BundleError:
        """Attach invocation identity and extra fields; returns ``self`` so it chains into ``raise``."""
        self.context.update(**values)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Flat description for monitoring and structured logs."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if context := self.context.to_dict():
            data["context"] = context
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class ConfigError(BundleError):
    """Invalid or missing settings. Fixing the configuration is the only remedy."""

    default_category = ErrorCategory.CONFIG


class HookNotImplementedError(BundleError, NotImplementedError):
    """A job subclass omitted a required hook or class constant.

    Propagates out of the worker without retries and is not written to the
    result store.
    """

    default_category = ErrorCategory.PROGRAMMER

    def __init__(self, owner: str, hook: str):
        self.owner = owner
        self.hook = hook
        super().__init__(f"{owner} must implement {hook}")


class QueueError(BundleError):
    """Job queue adapter error (unknown kind, undecodable payload)."""

    default_category = ErrorCategory.QUEUE


class EntityNotFoundError(BundleError):
    """Unit, document or material missing from the hierarchy service."""

    default_category = ErrorCategory.HIERARCHY

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class RenderError(BundleError):
    """Render/export service failed to produce an artifact."""

    default_category = ErrorCategory.RENDER
    default_retryable = True


class StorageError(BundleError):
    """Object storage or Drive error (upload, read back, folder creation)."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


class LockTimeoutError(BundleError):
    """Advisory lock could not be acquired in time."""

    default_category = ErrorCategory.LOCK
    default_retryable = True

    def __init__(self, name: str, timeout: float | None):
        self.name = name
        self.timeout = timeout
        super().__init__(f"Could not acquire lock {name!r} within {timeout}s")


class BundleDeadlineExceeded(BundleError):
    """The wait loop exceeded the configured deferral policy."""

    default_category = ErrorCategory.ORCHESTRATION

    def __init__(self, message: str, *, deferrals: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.deferrals = deferrals


def is_retryable(error: BaseException) -> bool:
    """Check if an error is worth another attempt by the queue."""
    if isinstance(error, HookNotImplementedError):
        return False
    if isinstance(error, BundleError):
        return error.retryable
    return True


__all__ = [
    "BundleDeadlineExceeded",
    "BundleError",
    "ConfigError",
    "EntityNotFoundError",
    "ErrorCategory",
    "ErrorContext",
    "HookNotImplementedError",
    "LockTimeoutError",
    "QueueError",
    "RenderError",
    "StorageError",
    "is_retryable",
]
