"""Job queue contract consumed by the orchestrator.

The orchestrator only ever needs three operations: put a job in, and look
at what is waiting and what is running. There is no dependency graph, no
future and no completion callback. Workers additionally need to claim a
job, mark it finished and hand it back for another attempt.

ARCHITECTURE
────────────
::

    JobQueue (Protocol)              ─ used by jobs
      ├── .enqueue(kind, entity_id, options) → job_id
      ├── .list_queued(kind)  → [JobDescriptor]
      └── .list_running(kind) → [JobDescriptor]

    WorkerQueue (Protocol, extends JobQueue)  ─ used by QueueWorker
      ├── .claim()             → JobDescriptor | None   (waiting → running)
      ├── .finish(descriptor)  → None                   (running → gone)
      └── .retry(descriptor)   → None                   (running → waiting, attempt + 1)

    Implementations:
      InMemoryJobQueue  ─ thread-safe FIFO (tests / dev)
      RedisJobQueue     ─ Resque-style lists + hashes (production)

No ordering, priority or exactly-once guarantee is assumed by callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from .descriptor import JobDescriptor, JobKind


@runtime_checkable
class JobQueue(Protocol):
    """Enqueue and introspection - everything the coordination logic may use."""

    def enqueue(self, kind: JobKind, entity_id: Any, options: Mapping[str, Any] | None = None) -> str:
        """Add a job; return its job id."""
        ...

    def list_queued(self, kind: JobKind) -> list[JobDescriptor]:
        """Jobs of ``kind`` waiting to be picked up."""
        ...

    def list_running(self, kind: JobKind) -> list[JobDescriptor]:
        """Jobs of ``kind`` currently claimed by a worker."""
        ...


@runtime_checkable
class WorkerQueue(JobQueue, Protocol):
    """Queue operations a worker loop needs on top of :class:`JobQueue`."""

    def claim(self) -> JobDescriptor | None:
        ...

    def finish(self, descriptor: JobDescriptor) -> None:
        ...

    def retry(self, descriptor: JobDescriptor) -> None:
        ...


__all__ = ["JobQueue", "WorkerQueue"]
