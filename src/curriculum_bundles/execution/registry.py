"""Job registry - injectable ``JobKind → job class`` lookup.

Manifesto:
A worker claims a descriptor that names its kind, nothing more. The
registry decouples the wiring of job classes (at startup) from their
resolution (per claimed descriptor), and an explicit instance can be
passed to a worker in tests instead of the default wiring.

ARCHITECTURE
────────────
::

    JobRegistry
      ├── .register(job_cls, kind=None)  ─ store class (kind defaults to job_cls.kind)
      ├── .get(kind)                      ─ lookup, QueueError if unknown
      ├── .has(kind) / ``kind in registry``
      └── .kinds()                        ─ registered kinds

    default_registry()  ─ the six concrete jobs
"""

from __future__ import annotations

from curriculum_bundles.core.errors import QueueError
from curriculum_bundles.jobs import (
    DocumentGdocJob,
    DocumentPdfJob,
    Job,
    MaterialGdocJob,
    MaterialPdfJob,
    UnitBundleGdocJob,
    UnitBundlePdfJob,
)
from curriculum_bundles.queue.descriptor import JobKind


class JobRegistry:
    """Injectable job class registry.

    Example:
        >>> registry = JobRegistry()
        >>> registry.register(DocumentPdfJob)
        >>> registry.get(JobKind.DOCUMENT_PDF) is DocumentPdfJob
        True
    """

    def __init__(self) -> None:
        self._jobs: dict[JobKind, type[Job]] = {}

    def register(self, job_cls: type[Job], kind: JobKind | str | None = None) -> None:
        """Register ``job_cls`` for ``kind`` (its own ``kind`` attribute by default)."""
        key = JobKind(kind) if kind is not None else job_cls.kind
        self._jobs[key] = job_cls

    def get(self, kind: JobKind | str) -> type[Job]:
        """Job class for ``kind``.

        Raises:
            QueueError: If no class is registered for the kind
        """
        try:
            return self._jobs[JobKind(kind)]
        except (KeyError, ValueError):
            available = sorted(k.value for k in self._jobs)
            raise QueueError(
                f"No job registered for {kind!r}. Available kinds: {available or 'none'}",
                retryable=False,
            ) from None

    def has(self, kind: JobKind | str) -> bool:
        try:
            return JobKind(kind) in self._jobs
        except ValueError:
            return False

    def __contains__(self, kind: object) -> bool:
        return isinstance(kind, (JobKind, str)) and self.has(kind)

    def kinds(self) -> list[JobKind]:
        return sorted(self._jobs, key=lambda k: k.value)

    def unregister(self, kind: JobKind | str) -> bool:
        return self._jobs.pop(JobKind(kind), None) is not None


def default_registry() -> JobRegistry:
    """Registry wired with every concrete job."""
    registry = JobRegistry()
    for job_cls in (
        DocumentPdfJob,
        MaterialPdfJob,
        DocumentGdocJob,
        MaterialGdocJob,
        UnitBundlePdfJob,
        UnitBundleGdocJob,
    ):
        registry.register(job_cls)
    return registry


__all__ = ["JobRegistry", "default_registry"]
