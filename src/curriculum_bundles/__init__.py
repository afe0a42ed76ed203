"""curriculum-bundles - PDF / Google Doc bundle generation for curriculum units.

A unit bundle is assembled from one generated artifact per lesson and per
material. Child jobs are fanned out on a plain job queue and the
orchestrator waits for them by re-enqueueing itself until no job of its
logical request is left waiting or running.

Quick start::

    from curriculum_bundles import JobKind, request_bundle

    request_id = request_bundle(queue, JobKind.UNIT_BUNDLE_PDF, unit_id)
"""

from .execution import QueueWorker, default_registry
from .factory import build_context
from .jobs import JobContext, UnitBundleGdocJob, UnitBundlePdfJob
from .queue import InMemoryJobQueue, JobDescriptor, JobKind
from .results import MemoryResultStore, SqliteResultStore
from .trigger import request_bundle

__version__ = "0.1.0"

__all__ = [
    "InMemoryJobQueue",
    "JobContext",
    "JobDescriptor",
    "JobKind",
    "MemoryResultStore",
    "QueueWorker",
    "SqliteResultStore",
    "UnitBundleGdocJob",
    "UnitBundlePdfJob",
    "__version__",
    "build_context",
    "default_registry",
    "request_bundle",
]
