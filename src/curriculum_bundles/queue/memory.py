"""In-memory job queue for testing and development.

Keeps one FIFO of waiting descriptors and one map of running descriptors,
guarded by a single lock. Should NOT be used across processes.

Example:
    >>> queue = InMemoryJobQueue()
    >>> job_id = queue.enqueue(JobKind.DOCUMENT_PDF, 7, {"content_type": "unit_bundle"})
    >>> [d.job_id for d in queue.list_queued(JobKind.DOCUMENT_PDF)] == [job_id]
    True
    >>> queue.claim().job_id == job_id
    True
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Mapping
from typing import Any

from .descriptor import JobDescriptor, JobKind


class InMemoryJobQueue:
    """Thread-safe FIFO queue implementing ``WorkerQueue``."""

    def __init__(self) -> None:
        self._waiting: deque[JobDescriptor] = deque()
        self._running: dict[str, JobDescriptor] = {}
        self._lock = threading.Lock()
        self.history: list[JobDescriptor] = []
        """Every descriptor ever enqueued, in order (for tests and debugging)."""

    def enqueue(self, kind: JobKind, entity_id: Any, options: Mapping[str, Any] | None = None) -> str:
        descriptor = JobDescriptor.create(kind, entity_id, options)
        self.push(descriptor)
        return descriptor.job_id

    def push(self, descriptor: JobDescriptor) -> None:
        """Put an already-built descriptor at the back of the queue."""
        with self._lock:
            self._waiting.append(descriptor)
            self.history.append(descriptor)

    def list_queued(self, kind: JobKind) -> list[JobDescriptor]:
        with self._lock:
            return [d for d in self._waiting if d.kind == kind]

    def list_running(self, kind: JobKind) -> list[JobDescriptor]:
        with self._lock:
            return [d for d in self._running.values() if d.kind == kind]

    def claim(self) -> JobDescriptor | None:
        with self._lock:
            if not self._waiting:
                return None
            descriptor = self._waiting.popleft()
            self._running[descriptor.job_id] = descriptor
            return descriptor

    def claim_job(self, job_id: str) -> JobDescriptor | None:
        """Claim one specific waiting descriptor (manual replays, tests)."""
        with self._lock:
            for descriptor in self._waiting:
                if descriptor.job_id == job_id:
                    self._waiting.remove(descriptor)
                    self._running[descriptor.job_id] = descriptor
                    return descriptor
        return None

    def start(self, descriptor: JobDescriptor) -> None:
        """Mark a descriptor as running without it having been queued."""
        with self._lock:
            self._running[descriptor.job_id] = descriptor

    def finish(self, descriptor: JobDescriptor) -> None:
        with self._lock:
            self._running.pop(descriptor.job_id, None)

    def retry(self, descriptor: JobDescriptor) -> None:
        with self._lock:
            self._running.pop(descriptor.job_id, None)
            again = descriptor.next_attempt()
            self._waiting.append(again)
            self.history.append(again)

    def clear(self) -> None:
        with self._lock:
            self._waiting.clear()
            self._running.clear()
            self.history.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._waiting)

    @property
    def idle(self) -> bool:
        with self._lock:
            return not self._waiting and not self._running


__all__ = ["InMemoryJobQueue"]
