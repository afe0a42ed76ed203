"""Dedup lookup - is an equivalent job already in flight?

All functions here read the queue's waiting and running views and nothing
else. They take no locks, so two concurrent callers may both see "none";
that race is tolerated because every result write is an idempotent merge
keyed by content type.

ARCHITECTURE
────────────
::

    find_active(queue, kind, entity_id)                 → JobDescriptor | None
    find_authoritative_request(queue, kind, entity_id)  → request id | None
        initial_request_id of the match, else its own job_id, so a lookup
        that lands on a self-requeue resolves back to the original trigger
    find_blocking_request(queue, kind, entity_id, ...)  → request id | None
        same-self check: an older, different logical request for the entity
    has_outstanding_work(queue, kinds, request_id, ...) → bool
        any job (other than the caller) still belonging to request_id
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from .queue.descriptor import JobDescriptor, JobKind
from .queue.protocol import JobQueue

REQUESTED_AT = "requested_at"


def _active(queue: JobQueue, kind: JobKind) -> Iterator[JobDescriptor]:
    yield from queue.list_queued(kind)
    yield from queue.list_running(kind)


def requested_at(descriptor: JobDescriptor) -> float:
    """When the descriptor's logical request was first triggered."""
    value = descriptor.options.get(REQUESTED_AT)
    return float(value) if value is not None else descriptor.enqueued_at


def find_active(
    queue: JobQueue,
    kind: JobKind,
    entity_id: Any,
    *,
    exclude_job_id: str | None = None,
) -> JobDescriptor | None:
    """First waiting-or-running job of ``kind`` for ``entity_id``."""
    for descriptor in _active(queue, kind):
        if descriptor.entity_id == entity_id and descriptor.job_id != exclude_job_id:
            return descriptor
    return None


def find_authoritative_request(
    queue: JobQueue,
    kind: JobKind,
    entity_id: Any,
    *,
    exclude_job_id: str | None = None,
) -> str | None:
    """Logical request id of an in-flight job of ``kind`` for ``entity_id``.

    Example:
        >>> queue = InMemoryJobQueue()
        >>> queue.enqueue(JobKind.UNIT_BUNDLE_PDF, 5, {"initial_request_id": "first"})
        '...'
        >>> find_authoritative_request(queue, JobKind.UNIT_BUNDLE_PDF, 5)
        'first'
    """
    descriptor = find_active(queue, kind, entity_id, exclude_job_id=exclude_job_id)
    if descriptor is None:
        return None
    return descriptor.request_id


def find_blocking_request(
    queue: JobQueue,
    kind: JobKind,
    entity_id: Any,
    *,
    job_id: str,
    request_id: str,
    since: float,
) -> str | None:
    """Same-self check for an orchestrator that is about to dispatch.

    Returns the request id of another logical request for the same entity
    that was triggered earlier than ``since`` (ties broken by request id),
    or ``None`` when the caller may proceed. Jobs of the caller's own
    logical request never block it, and the younger of two competing
    requests always yields to the older one, so two triggers cannot defer
    to each other forever.
    """
    for descriptor in _active(queue, kind):
        if descriptor.entity_id != entity_id or descriptor.job_id == job_id:
            continue
        other = descriptor.request_id
        if other == request_id:
            continue
        if (requested_at(descriptor), other) < (since, request_id):
            return other
    return None


def has_outstanding_work(
    queue: JobQueue,
    kinds: Iterable[JobKind],
    request_id: str,
    *,
    exclude_job_id: str,
) -> bool:
    """True while any job of ``kinds`` other than the caller belongs to ``request_id``."""
    for kind in kinds:
        for descriptor in _active(queue, kind):
            if descriptor.job_id != exclude_job_id and descriptor.belongs_to(request_id):
                return True
    return False


__all__ = [
    "REQUESTED_AT",
    "find_active",
    "find_authoritative_request",
    "find_blocking_request",
    "has_outstanding_work",
    "requested_at",
]
