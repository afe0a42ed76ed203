"""Retry policy the worker applies on behalf of the queue.

The queue's own retry is a fixed number of attempts with no backoff: a
failing job goes straight back to the waiting list with ``attempt + 1``
until the limit is reached.

Example:
    >>> policy = ConstantRetry(limit=3)
    >>> [policy.should_retry(attempt) for attempt in (1, 2, 3)]
    [True, True, False]
"""

from __future__ import annotations

from dataclasses import dataclass

from curriculum_bundles.core.errors import is_retryable


@dataclass(frozen=True)
class ConstantRetry:
    """Fixed attempt limit.

    Attributes:
        limit: Total attempts a job gets, the first one included
    """

    limit: int = 3

    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        """True if a job that failed on ``attempt`` should run again."""
        if attempt >= self.limit:
            return False
        if error is not None:
            return is_retryable(error)
        return True


__all__ = ["ConstantRetry"]
