"""Job descriptors - what sits in the queue.

A ``JobDescriptor`` is the immutable record of one enqueued invocation:
which job kind, which entity, which options. Nothing ever edits a
descriptor in place; a self-requeue or a retry produces a new one.

Two option keys carry the coordination protocol:

``initial_request_id``
    Id of the logical request the job belongs to. Set once, on the first
    orchestrator invocation, and copied unchanged into every child job and
    every self-requeue.

``with_dependants``
    Whether this orchestrator invocation still has to dispatch its children.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

INITIAL_REQUEST_ID = "initial_request_id"
WITH_DEPENDANTS = "with_dependants"


class JobKind(str, Enum):
    """Every job kind the system can enqueue."""

    DOCUMENT_PDF = "document_pdf"
    DOCUMENT_GDOC = "document_gdoc"
    MATERIAL_PDF = "material_pdf"
    MATERIAL_GDOC = "material_gdoc"
    UNIT_BUNDLE_PDF = "unit_bundle_pdf"
    UNIT_BUNDLE_GDOC = "unit_bundle_gdoc"


def new_job_id() -> str:
    """Queue-wide unique job id."""
    return uuid.uuid4().hex


def _freeze(options: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(options or {}))


@dataclass(frozen=True)
class JobDescriptor:
    """One enqueued job invocation.

    Example:
        >>> d = JobDescriptor.create(JobKind.UNIT_BUNDLE_PDF, 12, {"with_dependants": True})
        >>> d.with_dependants
        True
        >>> d.initial_request_id is None
        True
    """

    kind: JobKind
    job_id: str
    entity_id: Any
    options: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))
    attempt: int = 1
    enqueued_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", JobKind(self.kind))
        if not isinstance(self.options, MappingProxyType):
            object.__setattr__(self, "options", _freeze(self.options))

    @classmethod
    def create(
        cls,
        kind: JobKind | str,
        entity_id: Any,
        options: Mapping[str, Any] | None = None,
        *,
        job_id: str | None = None,
    ) -> JobDescriptor:
        """Build a descriptor for a brand new enqueue."""
        return cls(kind=JobKind(kind), job_id=job_id or new_job_id(), entity_id=entity_id, options=_freeze(options))

    @property
    def initial_request_id(self) -> str | None:
        return self.options.get(INITIAL_REQUEST_ID) or None

    @property
    def with_dependants(self) -> bool:
        return bool(self.options.get(WITH_DEPENDANTS))

    @property
    def request_id(self) -> str:
        """Logical request this job reports to (its own id for an original trigger)."""
        return self.initial_request_id or self.job_id

    def belongs_to(self, request_id: str) -> bool:
        """True if this job is the request itself or was spawned/requeued by it."""
        return self.job_id == request_id or self.initial_request_id == request_id

    def next_attempt(self) -> JobDescriptor:
        """Same job, one attempt later (the queue's own retry)."""
        return JobDescriptor(
            kind=self.kind,
            job_id=self.job_id,
            entity_id=self.entity_id,
            options=self.options,
            attempt=self.attempt + 1,
            enqueued_at=self.enqueued_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "job_id": self.job_id,
            "entity_id": self.entity_id,
            "options": dict(self.options),
            "attempt": self.attempt,
            "enqueued_at": self.enqueued_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JobDescriptor:
        return cls(
            kind=JobKind(data["kind"]),
            job_id=data["job_id"],
            entity_id=data["entity_id"],
            options=_freeze(data.get("options")),
            attempt=int(data.get("attempt", 1)),
            enqueued_at=float(data.get("enqueued_at") or time.time()),
        )


__all__ = [
    "INITIAL_REQUEST_ID",
    "WITH_DEPENDANTS",
    "JobDescriptor",
    "JobKind",
    "new_job_id",
]
