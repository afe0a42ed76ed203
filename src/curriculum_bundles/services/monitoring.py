"""Monitoring sink for terminal failures."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from curriculum_bundles.core.errors import BundleError
from curriculum_bundles.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class MonitoringSink(Protocol):
    def notify(self, error: BaseException, context: Mapping[str, Any]) -> None:
        ...


class LoggingMonitor:
    """Reports failures as structured ``error`` log events."""

    def notify(self, error: BaseException, context: Mapping[str, Any]) -> None:
        details = error.to_dict() if isinstance(error, BundleError) else {"error_type": type(error).__name__}
        logger.error("failure_reported", error=str(error), **details, **dict(context))


class RecordingMonitor:
    """Keeps every notification in memory."""

    def __init__(self) -> None:
        self.notifications: list[tuple[BaseException, dict[str, Any]]] = []

    def notify(self, error: BaseException, context: Mapping[str, Any]) -> None:
        self.notifications.append((error, dict(context)))


__all__ = ["LoggingMonitor", "MonitoringSink", "RecordingMonitor"]
