"""
Shared pytest fixtures for curriculum-bundles tests.

This module provides:
- An in-memory queue, lock provider and result store
- Fake render service and a Drive folder tree kept in memory
- A small unit hierarchy (two lessons, one material)
- A wired ``JobContext`` and a ``perform`` helper that runs one job
  the way a worker would (descriptor marked running while it runs)
"""

from __future__ import annotations

import io
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest
from pypdf import PdfWriter

from curriculum_bundles.core.errors import RenderError
from curriculum_bundles.core.settings import BundleSettings
from curriculum_bundles.execution import QueueWorker, default_registry
from curriculum_bundles.jobs import JobContext
from curriculum_bundles.locks import MemoryLockProvider
from curriculum_bundles.models import ContentPresenter, Lesson, Material, Unit
from curriculum_bundles.queue import InMemoryJobQueue, JobDescriptor
from curriculum_bundles.results import MemoryResultStore
from curriculum_bundles.services import InMemoryHierarchy, LocalStorage, MemoryDrive, RecordingMonitor, RemoteDocument


def make_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class FakeRenderer:
    """Render service double; entities listed in ``fail_for`` (by result key) fail."""

    def __init__(self, pages: int = 2):
        self.pages = pages
        self.fail_for: set[str] = set()
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def _check(self, presenter: ContentPresenter) -> None:
        if presenter.result_key in self.fail_for:
            raise RenderError(f"render failed for {presenter.display_name}")

    def export_pdf(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> bytes:
        self.calls.append(("pdf", presenter.result_key, dict(options)))
        self._check(presenter)
        return make_pdf(self.pages)

    def export_gdoc(self, presenter: ContentPresenter, options: Mapping[str, Any]) -> RemoteDocument:
        self.calls.append(("gdoc", presenter.result_key, dict(options)))
        self._check(presenter)
        file_id = presenter.result_key.replace(":", "-")
        return RemoteDocument(url=f"https://docs.google.com/document/d/{file_id}", file_id=file_id)

    def thumbnail(self, pdf: bytes) -> bytes:
        return b"\xff\xd8\xff\xe0thumb"


class RecordingLockProvider(MemoryLockProvider):
    """``MemoryLockProvider`` that remembers every name it acquired, in order."""

    def __init__(self) -> None:
        super().__init__()
        self.acquired: list[str] = []

    @contextmanager
    def lock(self, name: str, *, timeout: float | None = None) -> Iterator[None]:
        with super().lock(name, timeout=timeout):
            self.acquired.append(name)
            yield


# =============================================================================
# Hierarchy
# =============================================================================

BREADCRUMBS = ("ela", "g2", "m1", "u1")


@pytest.fixture
def unit() -> Unit:
    """Unit 1 with lessons 10, 11 and material 20."""
    lessons = (
        Lesson(id=10, name="Lesson 1", breadcrumbs=BREADCRUMBS + ("l1",), version=1),
        Lesson(id=11, name="Lesson 2", breadcrumbs=BREADCRUMBS + ("l2",), version=1),
    )
    materials = (
        Material(id=20, identifier="vocab-cards", breadcrumbs=BREADCRUMBS, version=2, document_id=10),
    )
    return Unit(id=1, name="Unit 1", breadcrumbs=BREADCRUMBS, lessons=lessons, materials=materials)


@pytest.fixture
def hierarchy(unit) -> InMemoryHierarchy:
    return InMemoryHierarchy([unit])


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> BundleSettings:
    return BundleSettings(
        _env_file=None,
        database_path=tmp_path / "bundles.db",
        local_storage_root=tmp_path / "s3",
        upload_blocked=True,
        drive_root_folder_id="root-folder",
        lock_timeout_seconds=1.0,
        max_deferrals=50,
    )


@pytest.fixture
def queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def locks() -> RecordingLockProvider:
    return RecordingLockProvider()


@pytest.fixture
def results(locks) -> MemoryResultStore:
    return MemoryResultStore(locks, lock_timeout=1.0)


@pytest.fixture
def storage(settings) -> LocalStorage:
    return LocalStorage(settings.local_storage_root)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def drive() -> MemoryDrive:
    return MemoryDrive()


@pytest.fixture
def monitor() -> RecordingMonitor:
    return RecordingMonitor()


@pytest.fixture
def context(queue, results, locks, renderer, storage, hierarchy, drive, monitor, settings) -> JobContext:
    return JobContext(
        queue=queue,
        results=results,
        locks=locks,
        renderer=renderer,
        storage=storage,
        hierarchy=hierarchy,
        drive=drive,
        monitor=monitor,
        settings=settings,
    )


@pytest.fixture
def worker(queue, context) -> QueueWorker:
    return QueueWorker(queue, context)


@pytest.fixture
def perform(queue, context):
    """Run one job for ``(kind, entity_id, options)`` and return what it returns."""
    registry = default_registry()

    def _perform(kind, entity_id, options=None, *, job_id=None, job_cls=None):
        descriptor = JobDescriptor.create(kind, entity_id, options, job_id=job_id)
        queue.start(descriptor)
        try:
            return (job_cls or registry.get(kind))(context, descriptor).run()
        finally:
            queue.finish(descriptor)

    return _perform
