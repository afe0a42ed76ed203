"""Worker loop, job registry and the queue's retry policy."""

from .registry import JobRegistry, default_registry
from .retry import ConstantRetry
from .worker import QueueWorker, WorkerStats

__all__ = [
    "ConstantRetry",
    "JobRegistry",
    "QueueWorker",
    "WorkerStats",
    "default_registry",
]
