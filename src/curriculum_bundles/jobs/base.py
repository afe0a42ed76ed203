"""Job base class and the dependency bundle every job receives.

Jobs are stateless: a worker builds one job object per claimed descriptor,
calls :meth:`Job.run` and throws it away. Everything a job talks to
(queue, result store, locks, render/storage/Drive services, hierarchy,
monitoring, settings, clock) arrives through :class:`JobContext`; no job
reaches for a process-wide singleton.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from curriculum_bundles.core.errors import ConfigError, HookNotImplementedError
from curriculum_bundles.core.settings import BundleSettings, get_settings
from curriculum_bundles.locks import LockProvider
from curriculum_bundles.queue.descriptor import INITIAL_REQUEST_ID, JobDescriptor, JobKind
from curriculum_bundles.queue.protocol import JobQueue
from curriculum_bundles.results import ResultStore
from curriculum_bundles.services.drive import DriveService
from curriculum_bundles.services.hierarchy import HierarchyService
from curriculum_bundles.services.monitoring import LoggingMonitor, MonitoringSink
from curriculum_bundles.services.render import Renderer
from curriculum_bundles.services.storage import ObjectStorage


@dataclass
class JobContext:
    """Explicit dependencies shared by all jobs of one worker."""

    queue: JobQueue
    results: ResultStore
    locks: LockProvider
    renderer: Renderer
    storage: ObjectStorage
    hierarchy: HierarchyService
    drive: DriveService | None = None
    monitor: MonitoringSink = field(default_factory=LoggingMonitor)
    settings: BundleSettings = field(default_factory=get_settings)
    clock: Callable[[], float] = time.time

    def now(self) -> int:
        """Current time as integer epoch seconds (the result timestamp format)."""
        return int(self.clock())

    def require_drive(self) -> DriveService:
        if self.drive is None:
            raise ConfigError("Google Drive service is not configured")
        return self.drive


class Job:
    """One invocation of one job kind."""

    kind: ClassVar[JobKind]

    def __init__(self, context: JobContext, descriptor: JobDescriptor):
        self.context = context
        self.descriptor = descriptor

    @property
    def job_id(self) -> str:
        return self.descriptor.job_id

    @property
    def entity_id(self) -> Any:
        return self.descriptor.entity_id

    def run(self) -> Any:
        """Perform the job for its descriptor."""
        return self.perform(self.descriptor.entity_id, dict(self.descriptor.options))

    def perform(self, entity_id: Any, options: Mapping[str, Any]) -> Any:
        raise HookNotImplementedError(type(self).__name__, "perform")

    def request_id_for(self, options: Mapping[str, Any]) -> str:
        return options.get(INITIAL_REQUEST_ID) or self.job_id

    def store_request_result(self, outcome: Mapping[str, Any], options: Mapping[str, Any], *, bundle: bool = False) -> None:
        """Record ``outcome`` in the slot of the logical request this job reports to."""
        self.context.results.store_request_result(self.request_id_for(options), self.job_id, outcome, bundle=bundle)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(job_id={self.job_id!r}, entity_id={self.entity_id!r})"


__all__ = ["Job", "JobContext"]
