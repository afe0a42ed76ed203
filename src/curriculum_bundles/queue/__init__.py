"""Job queue adapter: descriptors, the queue contract and its backends.

``RedisJobQueue`` lives in :mod:`curriculum_bundles.queue.redis` and is
imported from there explicitly.
"""

from .descriptor import INITIAL_REQUEST_ID, WITH_DEPENDANTS, JobDescriptor, JobKind, new_job_id
from .memory import InMemoryJobQueue
from .protocol import JobQueue, WorkerQueue

__all__ = [
    "INITIAL_REQUEST_ID",
    "WITH_DEPENDANTS",
    "InMemoryJobQueue",
    "JobDescriptor",
    "JobKind",
    "JobQueue",
    "WorkerQueue",
    "new_job_id",
]
