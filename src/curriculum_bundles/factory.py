"""
Factory functions that build a worker's backends from settings.

Manifesto:
    Jobs receive every collaborator through ``JobContext``; something has
    to turn ``BundleSettings`` into those collaborators once per process.
    Each factory here maps one group of settings to one backend, and
    ``build_context`` wires them together. Anything passed in explicitly
    wins over the settings, so tests and embedding applications can swap
    in their own backend for one concern and keep the rest.

Features:
    - ``create_storage()`` - S3, or the local directory when uploads are blocked
    - ``connect_database()`` - sqlite connection for results (and row locks)
    - ``create_redis_client()`` - client for the queue and locks
    - ``create_queue()`` / ``create_lock_provider()`` / ``create_result_store()``
    - ``build_context()`` - a complete ``JobContext``

Example::

    context = build_context(renderer=my_renderer, hierarchy=my_hierarchy)
    QueueWorker(context.queue, context).start()
"""

from __future__ import annotations

import sqlite3

import redis

from curriculum_bundles.core.logging import configure_logging, get_logger
from curriculum_bundles.core.settings import BundleSettings, get_settings
from curriculum_bundles.jobs.base import JobContext
from curriculum_bundles.locks import LockProvider, RedisLockProvider
from curriculum_bundles.queue.protocol import WorkerQueue
from curriculum_bundles.queue.redis import RedisJobQueue
from curriculum_bundles.results import ResultStore, SqliteResultStore
from curriculum_bundles.services.drive import DriveService
from curriculum_bundles.services.hierarchy import HierarchyService
from curriculum_bundles.services.monitoring import LoggingMonitor, MonitoringSink
from curriculum_bundles.services.render import Renderer
from curriculum_bundles.services.storage import LocalStorage, ObjectStorage, S3Storage

logger = get_logger(__name__)


def create_storage(settings: BundleSettings) -> ObjectStorage:
    """S3 storage, or ``LocalStorage`` under ``local_storage_root`` when uploads are blocked."""
    if settings.upload_blocked:
        return LocalStorage(settings.local_storage_root)
    return S3Storage(
        settings.s3_bucket,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
    )


def connect_database(settings: BundleSettings) -> sqlite3.Connection:
    """Open ``database_path``, creating its directory. Shared across worker threads."""
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(settings.database_path, check_same_thread=False)


def create_redis_client(settings: BundleSettings) -> redis.Redis:
    return redis.from_url(settings.redis_url, decode_responses=True)


def create_queue(settings: BundleSettings, client: redis.Redis | None = None) -> RedisJobQueue:
    return RedisJobQueue(client or create_redis_client(settings))


def create_lock_provider(settings: BundleSettings, client: redis.Redis | None = None) -> LockProvider:
    return RedisLockProvider(client or create_redis_client(settings))


def create_result_store(
    settings: BundleSettings,
    conn: sqlite3.Connection | None = None,
    locks: LockProvider | None = None,
) -> ResultStore:
    return SqliteResultStore(
        conn or connect_database(settings),
        locks,
        lock_timeout=settings.lock_timeout_seconds,
    )


def build_context(
    *,
    renderer: Renderer,
    hierarchy: HierarchyService,
    drive: DriveService | None = None,
    monitor: MonitoringSink | None = None,
    settings: BundleSettings | None = None,
    queue: WorkerQueue | None = None,
    locks: LockProvider | None = None,
    results: ResultStore | None = None,
    storage: ObjectStorage | None = None,
    configure: bool = True,
) -> JobContext:
    """Wire a ``JobContext`` from settings; explicit arguments take precedence.

    The queue and the locks share one Redis client, and the result store
    serialises its writes through the same lock provider.

    Args:
        configure: Also configure structlog from ``log_level`` / ``log_json``
    """
    settings = settings or get_settings()
    if configure:
        configure_logging(settings)

    client = None
    if queue is None or locks is None:
        client = create_redis_client(settings)
    queue = queue or create_queue(settings, client)
    locks = locks or create_lock_provider(settings, client)

    context = JobContext(
        queue=queue,
        results=results or create_result_store(settings, locks=locks),
        locks=locks,
        renderer=renderer,
        storage=storage or create_storage(settings),
        hierarchy=hierarchy,
        drive=drive,
        monitor=monitor or LoggingMonitor(),
        settings=settings,
    )
    logger.info(
        "context_built",
        queue=type(context.queue).__name__,
        results=type(context.results).__name__,
        storage=type(context.storage).__name__,
        drive_configured=drive is not None,
    )
    return context


__all__ = [
    "build_context",
    "connect_database",
    "create_lock_provider",
    "create_queue",
    "create_redis_client",
    "create_result_store",
    "create_storage",
]
