"""Bundle orchestrator - fan out child jobs, wait for them, assemble.

Manifesto:
The queue offers "enqueue" and "list waiting / running" and nothing else:
no dependency graph, no future, no completion callback. The orchestrator
therefore builds its join barrier out of stateless invocations. Each
invocation inspects the queue, does at most one step of work and either
finishes the bundle or re-enqueues itself and returns. Waiting never
blocks a worker.

ARCHITECTURE
────────────
::

    perform(entity_id, options)
      │
      1. normalise options (ignore_result, raise_errors, content_type,
      │  initial_request_id, requested_at, deferrals)
      │
      2. with_dependants and an older request for the entity is in flight?
      │     └─ yes → requeue(with_dependants=True)            ── return
      │
      ├─ lock bundle_generation_<kind> ─────────────────────────┐
      3. with_dependants → generate_dependants()                │
      4. outstanding = any NESTED_JOBS job of this request       │
      ├─────────────────────────────────────────────────────────┘
      │     └─ yes → requeue(with_dependants=False)           ── return
      │
      5. url = generate_bundle(); request slot ← {ok: true, link: url}
      │
      6. on error: raise_errors → propagate
                   else → request slot + unit link ← failed; notify; swallow

    Every requeue carries the same initial_request_id and deferrals + 1.
    DeferralPolicy turns an endless wait into BundleDeadlineExceeded,
    handled at step 6 like any terminal bundle failure.

Subclass contract:
    kind, CONTENT_TYPE, LINK_KEY, NESTED_JOBS
    generate_dependants()  enqueue exactly one child per child entity
    generate_bundle()      assemble from finished children, return the locator
"""

from __future__ import annotations

import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from curriculum_bundles.core.errors import (
    BundleDeadlineExceeded,
    HookNotImplementedError,
    StorageError,
)
from curriculum_bundles.core.logging import LogContext, get_logger
from curriculum_bundles.dedup import REQUESTED_AT, find_blocking_request, has_outstanding_work, requested_at
from curriculum_bundles.locks import bundle_lock_name
from curriculum_bundles.models import Unit, result_key
from curriculum_bundles.queue.descriptor import INITIAL_REQUEST_ID, WITH_DEPENDANTS, JobKind
from curriculum_bundles.services.storage import PDF_CONTENT_TYPE

from .base import Job
from .child import KEPT_ON_REWRITE

logger = get_logger(__name__)

DEFERRALS = "deferrals"


@dataclass(frozen=True)
class DeferralPolicy:
    """Bounds on how long one logical request may keep re-enqueueing itself.

    ``None`` disables a limit.

    Example:
        >>> policy = DeferralPolicy(max_deferrals=2, deadline_seconds=None)
        >>> policy.check(deferrals=2, requested_at=0.0, now=10.0)
        >>> policy.check(deferrals=3, requested_at=0.0, now=10.0)
        Traceback (most recent call last):
        ...
        curriculum_bundles.core.errors.BundleDeadlineExceeded: Bundle gave up after 3 deferrals (limit 2)
    """

    max_deferrals: int | None = None
    deadline_seconds: float | None = 6 * 60 * 60

    def check(self, *, deferrals: int, requested_at: float, now: float) -> None:
        if self.max_deferrals is not None and deferrals > self.max_deferrals:
            raise BundleDeadlineExceeded(
                f"Bundle gave up after {deferrals} deferrals (limit {self.max_deferrals})",
                deferrals=deferrals,
            )
        if self.deadline_seconds is not None and now - requested_at > self.deadline_seconds:
            raise BundleDeadlineExceeded(
                f"Bundle still waiting {now - requested_at:.0f}s after it was requested "
                f"(limit {self.deadline_seconds:.0f}s)",
                deferrals=deferrals,
            )


class BaseBundleJob(Job):
    """Fan-out / fan-in state machine shared by all bundle types."""

    CONTENT_TYPE: ClassVar[str | None] = None
    LINK_KEY: ClassVar[str | None] = None
    NESTED_JOBS: ClassVar[frozenset[JobKind]] = frozenset()

    options: dict[str, Any]
    unit: Unit | None = None

    def perform(self, entity_id: Any, options: Mapping[str, Any]) -> str | None:
        return self.perform_generation_for(entity_id, options)

    # ── hooks ────────────────────────────────────────────────────

    def generate_dependants(self) -> None:
        raise HookNotImplementedError(type(self).__name__, "generate_dependants")

    def generate_bundle(self) -> str:
        raise HookNotImplementedError(type(self).__name__, "generate_bundle")

    # ── state machine ────────────────────────────────────────────

    @property
    def initial_request_id(self) -> str:
        return self.options[INITIAL_REQUEST_ID]

    @property
    def with_dependants(self) -> bool:
        return bool(self.options.get(WITH_DEPENDANTS))

    def _check_contract(self) -> None:
        for name in ("CONTENT_TYPE", "LINK_KEY"):
            if getattr(self, name) is None:
                raise HookNotImplementedError(type(self).__name__, name)
        if not self.NESTED_JOBS:
            raise HookNotImplementedError(type(self).__name__, "NESTED_JOBS")

    def normalize_options(self, options: Mapping[str, Any]) -> dict[str, Any]:
        normalized = {"ignore_result": False, "raise_errors": False, **options}
        normalized["content_type"] = self.CONTENT_TYPE
        if not normalized.get(INITIAL_REQUEST_ID):
            normalized[INITIAL_REQUEST_ID] = self.job_id
        if normalized.get(REQUESTED_AT) is None:
            normalized[REQUESTED_AT] = requested_at(self.descriptor)
        normalized[DEFERRALS] = int(normalized.get(DEFERRALS) or 0)
        return normalized

    def perform_generation_for(self, entity_id: Any, options: Mapping[str, Any]) -> str | None:
        self._check_contract()
        self.options = self.normalize_options(options)

        with LogContext(
            job_kind=self.kind.value,
            job_id=self.job_id,
            initial_request_id=self.initial_request_id,
            entity_id=entity_id,
        ):
            try:
                self.unit = self.context.hierarchy.unit(entity_id)

                if self.with_dependants:
                    blocking = find_blocking_request(
                        self.context.queue,
                        self.kind,
                        entity_id,
                        job_id=self.job_id,
                        request_id=self.initial_request_id,
                        since=self.options[REQUESTED_AT],
                    )
                    if blocking is not None:
                        self.requeue(with_dependants=True, reason="bundle_in_flight", blocking_request=blocking)
                        return None

                with self.context.locks.lock(
                    bundle_lock_name(self.kind.value),
                    timeout=self.context.settings.lock_timeout_seconds,
                ):
                    if self.with_dependants:
                        self.generate_dependants()
                    outstanding = has_outstanding_work(
                        self.context.queue,
                        self.NESTED_JOBS,
                        self.initial_request_id,
                        exclude_job_id=self.job_id,
                    )

                if outstanding:
                    self.requeue(with_dependants=False, reason="outstanding_dependants")
                    return None

                url = self.generate_bundle()
                if not self.options["ignore_result"]:
                    self.store_request_result(
                        {"ok": True, "link": url, "entity_id": entity_id}, self.options, bundle=True
                    )
                logger.info("bundle_completed", url=url, deferrals=self.options[DEFERRALS])
                return url
            except HookNotImplementedError:
                raise
            except Exception as e:
                if self.options["raise_errors"]:
                    raise
                self.record_failure(e, [str(e)])
                return None

    def requeue(self, *, with_dependants: bool, reason: str, **log_fields: Any) -> str:
        """Enqueue the next invocation of this logical request."""
        deferrals = self.options[DEFERRALS] + 1
        self.context.settings.deferral_policy().check(
            deferrals=deferrals,
            requested_at=self.options[REQUESTED_AT],
            now=self.context.clock(),
        )
        options = {
            **self.options,
            INITIAL_REQUEST_ID: self.initial_request_id,
            WITH_DEPENDANTS: with_dependants,
            DEFERRALS: deferrals,
        }
        next_job_id = self.context.queue.enqueue(self.kind, self.entity_id, options)
        logger.info(
            "bundle_deferred",
            reason=reason,
            deferrals=deferrals,
            with_dependants=with_dependants,
            next_job_id=next_job_id,
            **log_fields,
        )
        return next_job_id

    def record_failure(self, error: BaseException, errors: list[str]) -> None:
        """Terminal bundle failure: request slot, unit link, monitoring."""
        logger.error("bundle_failed", error=str(error), error_type=type(error).__name__)
        self.store_request_result({"ok": False, "errors": errors, "entity_id": self.entity_id}, self.options, bundle=True)
        key = self.unit.result_key if self.unit is not None else result_key("unit", self.entity_id)
        self.context.results.put_link(
            key,
            self.CONTENT_TYPE,
            self.LINK_KEY,
            {"status": "failed", "errors": errors, "timestamp": self.context.now()},
            keep=KEPT_ON_REWRITE,
        )
        self.context.monitor.notify(
            error,
            {"job_kind": self.kind.value, "job_options": dict(self.options), "unit_id": self.entity_id},
        )

    def dependant_options(self, **extra: Any) -> dict[str, Any]:
        """Options every child of this request carries."""
        options = {"content_type": self.CONTENT_TYPE, INITIAL_REQUEST_ID: self.initial_request_id}
        if self.options.get("folder"):
            options["folder"] = self.options["folder"]
        options.update(extra)
        return options

    def child_link(self, entity: Any) -> dict[str, Any]:
        """The child's ``CONTENT_TYPE → LINK_KEY`` entry, or ``{}``."""
        links = self.context.results.read(entity.result_key)
        return (links.get(self.CONTENT_TYPE) or {}).get(self.LINK_KEY) or {}


class UnitBundlePdfJob(BaseBundleJob):
    """PDF bundle of a unit: every lesson and material PDF in one storage folder.

    Folder layout::

        <bundle_root>/unit_bundle/<unit folder>/
        ├── <lesson>.pdf
        └── materials/
            └── <material>.pdf
    """

    kind = JobKind.UNIT_BUNDLE_PDF
    CONTENT_TYPE = "unit_bundle"
    LINK_KEY = "pdf"
    NESTED_JOBS = frozenset({JobKind.DOCUMENT_PDF, JobKind.MATERIAL_PDF, JobKind.UNIT_BUNDLE_PDF})

    def generate_dependants(self) -> None:
        for lesson in self.unit.lessons:
            self.context.queue.enqueue(JobKind.DOCUMENT_PDF, lesson.id, self.dependant_options())
        for material in self.unit.materials:
            self.context.queue.enqueue(JobKind.MATERIAL_PDF, material.id, self.dependant_options())
        logger.info(
            "dependants_dispatched",
            lessons=len(self.unit.lessons),
            materials=len(self.unit.materials),
        )

    def generate_bundle(self) -> str:
        bundle_folder = self.unit.bundle_folder(self.context.settings.bundle_root, self.CONTENT_TYPE)

        copied = 0
        for lesson in self.unit.lessons:
            source_url = self.child_link(lesson).get("url")
            if source_url:
                copied += self.copy_pdf_to_bundle(source_url, bundle_folder, lesson.pdf_filename(self.CONTENT_TYPE))
        for material in self.unit.materials:
            source_url = self.child_link(material).get("url")
            if source_url:
                filename = f"materials/{material.pdf_filename(self.CONTENT_TYPE)}"
                copied += self.copy_pdf_to_bundle(source_url, bundle_folder, filename)

        url = self.context.storage.url_for(bundle_folder)
        self.context.results.put_link(
            self.unit.result_key,
            self.CONTENT_TYPE,
            self.LINK_KEY,
            {"url": url, "status": "completed", "timestamp": self.context.now()},
            keep=KEPT_ON_REWRITE,
        )
        logger.info("bundle_assembled", folder=bundle_folder, files=copied)
        return url

    def copy_pdf_to_bundle(self, source_url: str, bundle_folder: str, filename: str) -> int:
        """Copy one child PDF into the bundle folder; 1 if copied, 0 if it failed."""
        try:
            data = self.context.storage.read_back(source_url)
            self.context.storage.upload(f"{bundle_folder}/{filename}", data, PDF_CONTENT_TYPE)
        except (StorageError, OSError) as e:
            logger.error("bundle_copy_failed", source_url=source_url, filename=filename, error=str(e))
            return 0
        return 1


class UnitBundleGdocJob(BaseBundleJob):
    """Google Doc bundle of a unit: every lesson and material Doc in one Drive folder.

    Runs with ``raise_errors=True`` and ``ignore_result=True`` internally;
    :meth:`perform` records failures itself, appending the traceback frames
    from this package to the error list.
    """

    kind = JobKind.UNIT_BUNDLE_GDOC
    CONTENT_TYPE = "unit_bundle"
    LINK_KEY = "gdoc"
    NESTED_JOBS = frozenset({JobKind.DOCUMENT_GDOC, JobKind.MATERIAL_GDOC, JobKind.UNIT_BUNDLE_GDOC})

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._unit_folder_id: str | None = None
        self._materials_folder_id: str | None = None

    def perform(self, entity_id: Any, options: Mapping[str, Any]) -> str | None:
        try:
            return self.perform_generation_for(entity_id, {**options, "ignore_result": True, "raise_errors": True})
        except HookNotImplementedError:
            raise
        except Exception as e:
            frames = [
                line.strip()
                for line in traceback.format_tb(e.__traceback__)
                if "curriculum_bundles" in line
            ]
            self.record_failure(e, [str(e), *frames])
            return None

    def unit_folder_id(self) -> str:
        """Drive folder ``bundles / unit_bundle / <unit folder>``, created once per invocation."""
        if self._unit_folder_id is None:
            drive = self.context.require_drive()
            bundles = drive.create_folder("bundles", self.context.settings.drive_root_folder_id)
            bundle_type = drive.create_folder(self.CONTENT_TYPE, bundles)
            self._unit_folder_id = drive.create_folder(self.unit.folder_name, bundle_type)
        return self._unit_folder_id

    def materials_folder_id(self) -> str:
        if self._materials_folder_id is None:
            self._materials_folder_id = self.context.require_drive().create_folder("materials", self.unit_folder_id())
        return self._materials_folder_id

    def generate_dependants(self) -> None:
        existing = 0
        for lesson in self.unit.lessons:
            if self.child_link(lesson).get("url"):
                existing += 1
                continue
            self.context.queue.enqueue(
                JobKind.DOCUMENT_GDOC, lesson.id, self.dependant_options(folder_id=self.unit_folder_id())
            )
        for material in self.unit.materials:
            self.context.queue.enqueue(
                JobKind.MATERIAL_GDOC, material.id, self.dependant_options(folder_id=self.materials_folder_id())
            )
        logger.info(
            "dependants_dispatched",
            lessons=len(self.unit.lessons) - existing,
            lessons_with_doc=existing,
            materials=len(self.unit.materials),
        )

    def generate_bundle(self) -> str:
        url = self.context.require_drive().url_for(self.unit_folder_id())
        self.context.results.put_link(
            self.unit.result_key,
            self.CONTENT_TYPE,
            self.LINK_KEY,
            {"url": url, "status": "completed", "timestamp": self.context.now()},
            keep=KEPT_ON_REWRITE,
        )
        self.store_request_result({"ok": True, "link": url, "entity_id": self.entity_id}, self.options, bundle=True)
        return url


__all__ = [
    "DEFERRALS",
    "BaseBundleJob",
    "DeferralPolicy",
    "UnitBundleGdocJob",
    "UnitBundlePdfJob",
]
