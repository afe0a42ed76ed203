"""Queue worker - claims one job at a time and runs it to completion.

A worker never suspends a job: ``perform`` returns (done or deferred) or
raises, and the worker is then free for the next descriptor. Deferred
orchestrators come back as fresh descriptors they enqueued themselves.

Usage (programmatic)::

    from curriculum_bundles.execution.worker import QueueWorker

    worker = QueueWorker(queue, context)
    worker.start()  # blocking - runs until SIGINT/SIGTERM

Usage (tests)::

    worker.drain()  # run until the queue has nothing waiting or running
"""

from __future__ import annotations

import signal
import threading
import uuid
from dataclasses import dataclass
from typing import Any

from curriculum_bundles.core.errors import HookNotImplementedError
from curriculum_bundles.core.logging import get_logger
from curriculum_bundles.jobs.base import JobContext
from curriculum_bundles.queue.descriptor import JobDescriptor
from curriculum_bundles.queue.protocol import WorkerQueue

from .registry import JobRegistry, default_registry
from .retry import ConstantRetry

logger = get_logger(__name__)


@dataclass
class WorkerStats:
    """Aggregate counters for one worker."""

    total_processed: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_retried: int = 0
    total_exhausted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "total_completed": self.total_completed,
            "total_failed": self.total_failed,
            "total_retried": self.total_retried,
            "total_exhausted": self.total_exhausted,
        }


class QueueWorker:
    """Runs descriptors claimed from a :class:`WorkerQueue`.

    Failure handling:
        A job that raises goes back to the queue with ``attempt + 1`` while
        ``retry.should_retry`` allows it; after the last attempt it is
        dropped and logged as exhausted. A ``HookNotImplementedError`` is
        never retried: the descriptor is dropped and the error propagates
        out of :meth:`run_once`.
    """

    def __init__(
        self,
        queue: WorkerQueue,
        context: JobContext,
        registry: JobRegistry | None = None,
        retry: ConstantRetry | None = None,
        poll_interval: float = 1.0,
        worker_id: str | None = None,
    ):
        self.queue = queue
        self.context = context
        self.registry = registry or default_registry()
        self.retry = retry or ConstantRetry(limit=context.settings.child_retry_limit)
        self.poll_interval = poll_interval
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.stats = WorkerStats()
        self._shutdown = threading.Event()

    # ------------------------------------------------------------------ #
    # One job
    # ------------------------------------------------------------------ #

    def run_once(self) -> JobDescriptor | None:
        """Claim and run one descriptor; ``None`` when nothing is waiting."""
        descriptor = self.queue.claim()
        if descriptor is None:
            return None
        self.run_descriptor(descriptor)
        return descriptor

    def run_descriptor(self, descriptor: JobDescriptor) -> None:
        """Run an already-claimed descriptor and settle it with the queue."""
        self.stats.total_processed += 1
        log = logger.bind(
            worker_id=self.worker_id,
            job_kind=descriptor.kind.value,
            job_id=descriptor.job_id,
            attempt=descriptor.attempt,
        )

        try:
            job = self.registry.get(descriptor.kind)(self.context, descriptor)
            job.run()
        except HookNotImplementedError:
            self.queue.finish(descriptor)
            self.stats.total_failed += 1
            log.error("job_contract_violation")
            raise
        except Exception as exc:
            self.stats.total_failed += 1
            if self.retry.should_retry(descriptor.attempt, exc):
                self.queue.retry(descriptor)
                self.stats.total_retried += 1
                log.warning("job_retry_scheduled", error=str(exc), error_type=type(exc).__name__)
            else:
                self.queue.finish(descriptor)
                self.stats.total_exhausted += 1
                log.error("job_attempts_exhausted", error=str(exc), error_type=type(exc).__name__)
        else:
            self.queue.finish(descriptor)
            self.stats.total_completed += 1
            log.debug("job_finished")

    def drain(self, max_jobs: int = 10_000) -> int:
        """Run jobs until nothing is claimable or ``max_jobs`` have run; returns the count."""
        count = 0
        while count < max_jobs:
            if self.run_once() is None:
                break
            count += 1
        return count

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Poll the queue until :meth:`stop` or SIGINT/SIGTERM."""
        logger.info("worker_starting", worker_id=self.worker_id, poll_interval=self.poll_interval)
        try:
            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)
        except (ValueError, OSError):
            pass  # not in main thread

        while not self._shutdown.is_set():
            if self.run_once() is None:
                self._shutdown.wait(self.poll_interval)

        logger.info("worker_stopped", worker_id=self.worker_id, **self.stats.to_dict())

    def stop(self) -> None:
        """Request graceful shutdown."""
        self._shutdown.set()

    def _handle_signal(self, signum, frame):
        logger.info("worker_signal_received", worker_id=self.worker_id, signal=signum)
        self.stop()


__all__ = ["QueueWorker", "WorkerStats"]
