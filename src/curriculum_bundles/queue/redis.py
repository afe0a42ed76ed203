"""Redis-backed job queue (Resque-style layout).

Layout per job kind::

    <namespace>:queue:<kind>     LIST  of JSON descriptors, FIFO (RPUSH / LPOP)
    <namespace>:running:<kind>   HASH  job_id → JSON descriptor

A claim moves a descriptor from the list into the hash inside one Lua
script, so a job is always visible in exactly one of the two views.

``list_queued`` / ``list_running`` read those keys without any lock; the
views are eventually consistent and the coordination logic is written to
tolerate that.

Usage::

    import redis
    from curriculum_bundles.queue.redis import RedisJobQueue

    queue = RedisJobQueue(redis.from_url("redis://localhost:6379/0"))
    job_id = queue.enqueue(JobKind.UNIT_BUNDLE_PDF, 12, {"with_dependants": True})
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

import redis

from curriculum_bundles.core.errors import QueueError
from curriculum_bundles.core.logging import get_logger

from .descriptor import JobDescriptor, JobKind

logger = get_logger(__name__)

# KEYS: queue list, running hash. Returns the claimed payload or nil.
# An undecodable payload is popped but not marked running; the caller raises.
_CLAIM_SCRIPT = """
local raw = redis.call("LPOP", KEYS[1])
if not raw then
    return false
end
local ok, job = pcall(cjson.decode, raw)
if ok and type(job) == "table" and job["job_id"] then
    redis.call("HSET", KEYS[2], job["job_id"], raw)
end
return raw
"""


class RedisJobQueue:
    """``WorkerQueue`` implementation on top of a ``redis.Redis`` client."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        namespace: str = "bundles",
        kinds: Iterable[JobKind] | None = None,
    ):
        self._client = client
        self._namespace = namespace
        self._kinds = list(kinds or JobKind)
        self._cursor = 0
        self._claim = client.register_script(_CLAIM_SCRIPT)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisJobQueue:
        return cls(redis.from_url(url, decode_responses=True), **kwargs)

    def _queue_key(self, kind: JobKind) -> str:
        return f"{self._namespace}:queue:{JobKind(kind).value}"

    def _running_key(self, kind: JobKind) -> str:
        return f"{self._namespace}:running:{JobKind(kind).value}"

    @staticmethod
    def _encode(descriptor: JobDescriptor) -> str:
        return json.dumps(descriptor.to_dict(), sort_keys=True, default=str)

    @staticmethod
    def _decode(raw: str | bytes) -> JobDescriptor:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return JobDescriptor.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise QueueError("Undecodable job payload", cause=e).with_context(payload=raw[:200])

    # ── JobQueue ─────────────────────────────────────────────────

    def enqueue(self, kind: JobKind, entity_id: Any, options: Mapping[str, Any] | None = None) -> str:
        descriptor = JobDescriptor.create(kind, entity_id, options)
        self.push(descriptor)
        return descriptor.job_id

    def push(self, descriptor: JobDescriptor) -> None:
        self._client.rpush(self._queue_key(descriptor.kind), self._encode(descriptor))
        logger.debug("job_enqueued", job_kind=descriptor.kind.value, job_id=descriptor.job_id)

    def list_queued(self, kind: JobKind) -> list[JobDescriptor]:
        return [self._decode(raw) for raw in self._client.lrange(self._queue_key(kind), 0, -1)]

    def list_running(self, kind: JobKind) -> list[JobDescriptor]:
        return [self._decode(raw) for raw in self._client.hvals(self._running_key(kind))]

    # ── WorkerQueue ──────────────────────────────────────────────

    def claim(self) -> JobDescriptor | None:
        """Move the next waiting job to the running hash, visiting kinds round-robin."""
        for offset in range(len(self._kinds)):
            kind = self._kinds[(self._cursor + offset) % len(self._kinds)]
            raw = self._claim(keys=[self._queue_key(kind), self._running_key(kind)])
            if raw is None:
                continue
            self._cursor = (self._cursor + offset + 1) % len(self._kinds)
            return self._decode(raw)
        return None

    def finish(self, descriptor: JobDescriptor) -> None:
        self._client.hdel(self._running_key(descriptor.kind), descriptor.job_id)

    def retry(self, descriptor: JobDescriptor) -> None:
        again = descriptor.next_attempt()
        pipe = self._client.pipeline()
        pipe.hdel(self._running_key(descriptor.kind), descriptor.job_id)
        pipe.rpush(self._queue_key(descriptor.kind), self._encode(again))
        pipe.execute()


__all__ = ["RedisJobQueue"]
