"""Advisory locks - short named critical sections.

Two families of lock names are used:

``bundle_generation_<bundleType>``
    Held by an orchestrator around dependant dispatch and the outstanding
    work scan for one bundle type (see :func:`bundle_lock_name`).

``result:<namespace>:<entity_id>``
    Held by the result store for the duration of one merge-write. Never
    held across render or upload calls.

ARCHITECTURE
────────────
::

    LockProvider (Protocol)
      └── .lock(name, timeout=None)  ─ context manager, LockTimeoutError on timeout

    MemoryLockProvider    ─ named threading locks (one process)
    DatabaseLockProvider  ─ expiring rows in core_locks (sqlite3), self-heals on crash
    RedisLockProvider     ─ redis-py Lock objects (many processes / hosts)

Example::

    locks = MemoryLockProvider()
    with locks.lock(bundle_lock_name("unit_bundle_pdf"), timeout=5):
        dispatch_children()
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

import redis

from curriculum_bundles.core.errors import LockTimeoutError

BUNDLE_LOCK_PREFIX = "bundle_generation_"


def bundle_lock_name(bundle_type: str) -> str:
    """Advisory lock name guarding one bundle type."""
    return f"{BUNDLE_LOCK_PREFIX}{bundle_type}"


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@runtime_checkable
class LockProvider(Protocol):
    """Named mutual exclusion."""

    def lock(self, name: str, *, timeout: float | None = None):
        """Context manager holding ``name``; raises LockTimeoutError if not acquired in time."""
        ...


class MemoryLockProvider:
    """Process-local named locks."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _named(self, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(name, threading.Lock())

    @contextmanager
    def lock(self, name: str, *, timeout: float | None = None) -> Iterator[None]:
        lock = self._named(name)
        if not lock.acquire(timeout=-1 if timeout is None else timeout):
            raise LockTimeoutError(name, timeout)
        try:
            yield
        finally:
            lock.release()


class DatabaseLockProvider:
    """Row locks with automatic expiry, on a sqlite3 connection.

    A lock is a row in ``core_locks``; inserting it acquires, deleting it
    releases. Rows carry ``expires_at`` so a crashed holder cannot block
    others for longer than ``ttl_seconds``.
    """

    def __init__(self, conn, *, ttl_seconds: int = 300, poll_interval: float = 0.05):
        """
        Args:
            conn: sqlite3 connection (shared with the result store is fine)
            ttl_seconds: Lock expires after this many seconds
            poll_interval: Sleep between acquisition attempts
        """
        self._conn = conn
        self._ttl = ttl_seconds
        self._poll_interval = poll_interval
        self._mutex = threading.Lock()
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self._mutex:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS core_locks (
                    lock_key TEXT PRIMARY KEY,
                    holder TEXT NOT NULL,
                    acquired_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
                """
            )
            self._conn.commit()

    def try_acquire(self, name: str, holder: str) -> bool:
        """One acquisition attempt. True if ``holder`` now owns ``name``."""
        now = utcnow()
        expires_at = now + timedelta(seconds=self._ttl)
        with self._mutex:
            cursor = self._conn.cursor()
            cursor.execute(
                "DELETE FROM core_locks WHERE lock_key = ? AND expires_at < ?",
                (name, now.isoformat()),
            )
            cursor.execute(
                """
                INSERT OR IGNORE INTO core_locks (lock_key, holder, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (name, holder, now.isoformat(), expires_at.isoformat()),
            )
            self._conn.commit()
            return cursor.rowcount > 0

    def release(self, name: str, holder: str) -> bool:
        with self._mutex:
            cursor = self._conn.cursor()
            cursor.execute(
                "DELETE FROM core_locks WHERE lock_key = ? AND holder = ?",
                (name, holder),
            )
            self._conn.commit()
            return cursor.rowcount > 0

    def is_locked(self, name: str) -> bool:
        with self._mutex:
            row = self._conn.execute(
                "SELECT expires_at FROM core_locks WHERE lock_key = ?",
                (name,),
            ).fetchone()
        return row is not None and datetime.fromisoformat(row[0]) >= utcnow()

    @contextmanager
    def lock(self, name: str, *, timeout: float | None = None) -> Iterator[None]:
        holder = uuid.uuid4().hex
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.try_acquire(name, holder):
            if deadline is not None and time.monotonic() >= deadline:
                raise LockTimeoutError(name, timeout)
            time.sleep(self._poll_interval)
        try:
            yield
        finally:
            self.release(name, holder)


class RedisLockProvider:
    """Locks shared by every worker connected to the same Redis."""

    def __init__(self, client: redis.Redis, *, namespace: str = "bundles", ttl_seconds: int = 300):
        self._client = client
        self._namespace = namespace
        self._ttl = ttl_seconds

    @contextmanager
    def lock(self, name: str, *, timeout: float | None = None) -> Iterator[None]:
        lock = self._client.lock(f"{self._namespace}:lock:{name}", timeout=self._ttl, blocking_timeout=timeout)
        if not lock.acquire(blocking=True):
            raise LockTimeoutError(name, timeout)
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockNotOwnedError:
                # expired under us; the ttl already released it
                pass


__all__ = [
    "BUNDLE_LOCK_PREFIX",
    "DatabaseLockProvider",
    "LockProvider",
    "MemoryLockProvider",
    "RedisLockProvider",
    "bundle_lock_name",
]
