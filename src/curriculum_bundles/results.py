"""Result store - per-entity generation results, merged under a lock.

Two kinds of data live here:

**Entity links** (``namespace="links"`` or ``"preview_links"``)
    One JSON map per entity, keyed ``content_type → artifact kind``::

        {
          "unit_bundle": {
            "pdf":  {"url": ..., "timestamp": ..., "pages": ..., "status"?: ..., "thumb_url"?: ...},
            "gdoc": {"url": ..., "timestamp": ..., "pages": ...}
          }
        }

    Every write runs inside :meth:`ResultStore.transaction`: take the entity
    lock, reload the stored map, apply the change, persist, release. A change
    is either a deep merge of a patch or the replacement of exactly one
    ``content_type → artifact kind`` entry, so a PDF child and a Doc child
    writing the same entity never clobber each other's keys, and the order
    of their writes does not matter.

    Entities are addressed by their typed key (``document:3``,
    ``material:3``, ``unit:1``), see :func:`curriculum_bundles.models.result_key`.

**Request slots** (keyed by ``initial_request_id``)
    The outcome of every job that reported to one logical request::

        {"bundle": {"ok": true, "link": ..., "entity_id": ...},
         "jobs":   {"<job_id>": {"ok": false, "errors": [...]}}}

ARCHITECTURE
────────────
::

    ResultStore (abstract)
      ├── read(entity_id, namespace)
      ├── transaction(entity_id, namespace)  ─ lock + reload + persist
      ├── merge_result(entity_id, patch, namespace)
      ├── put_link(entity_id, content_type, artifact_kind, entry, namespace)
      ├── store_request_result(request_id, job_id, outcome, bundle=False)
      └── request_result(request_id)

    MemoryResultStore  ─ dicts (tests / dev)
    SqliteResultStore  ─ bundle_results + bundle_request_results tables
"""

from __future__ import annotations

import copy
import json
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from curriculum_bundles.locks import LockProvider, MemoryLockProvider

LINKS = "links"
PREVIEW_LINKS = "preview_links"


def deep_merge(base: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Nested-key merge of ``patch`` into ``base``; returns a new dict.

    >>> deep_merge({"a": {"pdf": {"url": 1}}}, {"a": {"gdoc": {"url": 2}}})
    {'a': {'pdf': {'url': 1}, 'gdoc': {'url': 2}}}
    """
    merged = copy.deepcopy(dict(base))
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _key(entity_id: Any) -> str:
    return str(entity_id)


class ResultStore(ABC):
    """Per-entity result maps plus per-request outcome slots."""

    def __init__(self, locks: LockProvider | None = None, *, lock_timeout: float | None = 30.0):
        self._locks = locks or MemoryLockProvider()
        self._lock_timeout = lock_timeout

    # ── storage primitives ───────────────────────────────────────

    @abstractmethod
    def _load(self, namespace: str, entity_key: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def _save(self, namespace: str, entity_key: str, data: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def _load_slot(self, request_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def _save_slot(self, request_id: str, data: dict[str, Any]) -> None:
        ...

    # ── entity links ─────────────────────────────────────────────

    def read(self, entity_id: Any, namespace: str = LINKS) -> dict[str, Any]:
        """Plain read of the current map (no lock)."""
        return self._load(namespace, _key(entity_id))

    @contextmanager
    def transaction(self, entity_id: Any, namespace: str = LINKS) -> Iterator[dict[str, Any]]:
        """Hold the entity lock and yield a freshly reloaded, mutable map.

        The map is persisted when the block exits cleanly; on an exception
        nothing is written.
        """
        entity_key = _key(entity_id)
        with self._locks.lock(f"result:{namespace}:{entity_key}", timeout=self._lock_timeout):
            data = self._load(namespace, entity_key)
            yield data
            self._save(namespace, entity_key, data)

    def merge_result(self, entity_id: Any, patch: Mapping[str, Any], namespace: str = LINKS) -> dict[str, Any]:
        """Deep-merge ``patch`` into the entity's map; returns the stored result."""
        with self.transaction(entity_id, namespace) as data:
            merged = deep_merge(data, patch)
            data.clear()
            data.update(merged)
        return merged

    def put_link(
        self,
        entity_id: Any,
        content_type: str,
        artifact_kind: str,
        entry: Mapping[str, Any],
        namespace: str = LINKS,
        *,
        keep: tuple[str, ...] = (),
    ) -> dict[str, Any]:
        """Replace one ``content_type → artifact_kind`` entry.

        Other content types and other artifact kinds of the entity are left
        alone. Keys listed in ``keep`` survive from the previous entry, so a
        failure can clear a partial link without dropping its nested
        ``preview`` data.
        """
        with self.transaction(entity_id, namespace) as data:
            section = data.get(content_type)
            if not isinstance(section, dict):
                section = data[content_type] = {}
            previous = section.get(artifact_kind) or {}
            kept = {key: previous[key] for key in keep if key in previous}
            section[artifact_kind] = {**kept, **copy.deepcopy(dict(entry))}
        return copy.deepcopy(data)

    # ── request slots ────────────────────────────────────────────

    def store_request_result(
        self,
        request_id: str,
        job_id: str,
        outcome: Mapping[str, Any],
        *,
        bundle: bool = False,
    ) -> None:
        """Record one job's outcome in its logical request's slot.

        ``bundle=True`` marks the orchestrator's terminal outcome; child jobs
        are recorded under ``jobs`` by job id. Re-recording the same job id
        overwrites its previous outcome.
        """
        with self._locks.lock(f"request:{request_id}", timeout=self._lock_timeout):
            slot = self._load_slot(request_id)
            if bundle:
                slot["bundle"] = dict(outcome)
            else:
                slot.setdefault("jobs", {})[job_id] = dict(outcome)
            self._save_slot(request_id, slot)

    def request_result(self, request_id: str) -> dict[str, Any]:
        return self._load_slot(request_id)


class MemoryResultStore(ResultStore):
    """Dict-backed store for tests and single-process use."""

    def __init__(self, locks: LockProvider | None = None, **kwargs: Any):
        super().__init__(locks, **kwargs)
        self._data: dict[tuple[str, str], dict[str, Any]] = {}
        self._slots: dict[str, dict[str, Any]] = {}

    def _load(self, namespace: str, entity_key: str) -> dict[str, Any]:
        return copy.deepcopy(self._data.get((namespace, entity_key), {}))

    def _save(self, namespace: str, entity_key: str, data: dict[str, Any]) -> None:
        self._data[(namespace, entity_key)] = copy.deepcopy(data)

    def _load_slot(self, request_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._slots.get(request_id, {}))

    def _save_slot(self, request_id: str, data: dict[str, Any]) -> None:
        self._slots[request_id] = copy.deepcopy(data)


class SqliteResultStore(ResultStore):
    """Store on a sqlite3 connection (open it with ``check_same_thread=False``)."""

    def __init__(self, conn, locks: LockProvider | None = None, **kwargs: Any):
        super().__init__(locks, **kwargs)
        self._conn = conn
        self._db_mutex = threading.Lock()
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self._db_mutex:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS bundle_results (
                    namespace TEXT NOT NULL,
                    entity_id TEXT NOT NULL,
                    payload TEXT NOT NULL DEFAULT '{}',
                    PRIMARY KEY (namespace, entity_id)
                );
                CREATE TABLE IF NOT EXISTS bundle_request_results (
                    request_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL DEFAULT '{}'
                );
                """
            )
            self._conn.commit()

    def _load(self, namespace: str, entity_key: str) -> dict[str, Any]:
        with self._db_mutex:
            row = self._conn.execute(
                "SELECT payload FROM bundle_results WHERE namespace = ? AND entity_id = ?",
                (namespace, entity_key),
            ).fetchone()
        return json.loads(row[0]) if row else {}

    def _save(self, namespace: str, entity_key: str, data: dict[str, Any]) -> None:
        with self._db_mutex:
            self._conn.execute(
                """
                INSERT INTO bundle_results (namespace, entity_id, payload) VALUES (?, ?, ?)
                ON CONFLICT (namespace, entity_id) DO UPDATE SET payload = excluded.payload
                """,
                (namespace, entity_key, json.dumps(data, default=str)),
            )
            self._conn.commit()

    def _load_slot(self, request_id: str) -> dict[str, Any]:
        with self._db_mutex:
            row = self._conn.execute(
                "SELECT payload FROM bundle_request_results WHERE request_id = ?",
                (request_id,),
            ).fetchone()
        return json.loads(row[0]) if row else {}

    def _save_slot(self, request_id: str, data: dict[str, Any]) -> None:
        with self._db_mutex:
            self._conn.execute(
                """
                INSERT INTO bundle_request_results (request_id, payload) VALUES (?, ?)
                ON CONFLICT (request_id) DO UPDATE SET payload = excluded.payload
                """,
                (request_id, json.dumps(data, default=str)),
            )
            self._conn.commit()


__all__ = [
    "LINKS",
    "PREVIEW_LINKS",
    "MemoryResultStore",
    "ResultStore",
    "SqliteResultStore",
    "deep_merge",
]
