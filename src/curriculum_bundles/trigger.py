"""External trigger - ask for a bundle of an entity.

``request_bundle`` is the enqueue call an application makes when a user
asks for a unit bundle. It folds onto an in-flight request for the same
entity when one exists, so repeated clicks share one result slot.

Example:
    >>> queue = InMemoryJobQueue()
    >>> first = request_bundle(queue, JobKind.UNIT_BUNDLE_PDF, 7)
    >>> request_bundle(queue, JobKind.UNIT_BUNDLE_PDF, 7) == first
    True
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from curriculum_bundles.core.errors import QueueError
from curriculum_bundles.core.logging import get_logger
from curriculum_bundles.dedup import find_authoritative_request
from curriculum_bundles.queue.descriptor import INITIAL_REQUEST_ID, WITH_DEPENDANTS, JobKind
from curriculum_bundles.queue.protocol import JobQueue

logger = get_logger(__name__)

BUNDLE_KINDS = frozenset({JobKind.UNIT_BUNDLE_PDF, JobKind.UNIT_BUNDLE_GDOC})


def request_bundle(
    queue: JobQueue,
    kind: JobKind | str,
    entity_id: Any,
    options: Mapping[str, Any] | None = None,
) -> str:
    """Return the request id that will carry the bundle of ``entity_id``.

    The id of an in-flight request for the entity when there is one,
    otherwise the job id of a freshly enqueued orchestrator.
    """
    try:
        kind = JobKind(kind)
    except ValueError:
        raise QueueError(f"Unknown job kind: {kind!r}") from None
    if kind not in BUNDLE_KINDS:
        raise QueueError(f"{kind.value} is not a bundle job kind")

    existing = find_authoritative_request(queue, kind, entity_id)
    if existing is not None:
        logger.info("bundle_request_joined", job_kind=kind.value, entity_id=entity_id, initial_request_id=existing)
        return existing

    job_options = {key: value for key, value in (options or {}).items() if key != INITIAL_REQUEST_ID}
    job_options[WITH_DEPENDANTS] = True
    job_id = queue.enqueue(kind, entity_id, job_options)
    logger.info("bundle_requested", job_kind=kind.value, entity_id=entity_id, job_id=job_id)
    return job_id


__all__ = ["BUNDLE_KINDS", "request_bundle"]
