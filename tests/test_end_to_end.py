"""
End-to-end bundle generation through the in-memory queue and worker.

Each test triggers a bundle the way an application would and drains the
queue with a real ``QueueWorker``, so orchestrator invocations, child jobs,
deferrals and retries interleave in queue order.
"""

import dataclasses
import sqlite3
import time

import pytest

from curriculum_bundles.core.settings import BundleSettings
from curriculum_bundles.dedup import REQUESTED_AT
from curriculum_bundles.execution import QueueWorker
from curriculum_bundles.jobs import DEFERRALS
from curriculum_bundles.locks import DatabaseLockProvider
from curriculum_bundles.queue import WITH_DEPENDANTS, JobDescriptor, JobKind
from curriculum_bundles.results import SqliteResultStore
from curriculum_bundles.trigger import request_bundle

pytestmark = pytest.mark.integration

PDF_BUNDLE = JobKind.UNIT_BUNDLE_PDF
GDOC_BUNDLE = JobKind.UNIT_BUNDLE_GDOC
CHILD_KINDS = (JobKind.DOCUMENT_PDF, JobKind.MATERIAL_PDF)


def history_of(queue, request_id, kinds):
    return [d for d in queue.history if d.kind in kinds and d.request_id == request_id]


def bundle_folder(settings):
    return settings.local_storage_root / "bundles/unit_bundle/ela_g2_m1_u1"


class TestPdfBundle:
    def test_full_flow(self, queue, worker, results, settings):
        request_id = request_bundle(queue, PDF_BUNDLE, 1)

        assert worker.drain() == 5
        assert queue.idle

        link = results.read("unit:1")["unit_bundle"]["pdf"]
        assert link["status"] == "completed"
        assert link["url"] == bundle_folder(settings).resolve().as_uri()
        assert sorted(p.name for p in bundle_folder(settings).rglob("*.pdf")) == [
            "ela_g2_m1_u1_l1_v1.pdf",
            "ela_g2_m1_u1_l2_v1.pdf",
            "ela_g2_m1_u1_vocab-cards_v2.pdf",
        ]

        slot = results.request_result(request_id)
        assert slot["bundle"]["ok"] is True
        assert slot["bundle"]["link"] == link["url"]
        assert len(slot["jobs"]) == 3
        assert all(outcome["ok"] for outcome in slot["jobs"].values())

        for key in ("document:10", "document:11", "material:20"):
            assert results.read(key)["unit_bundle"]["pdf"]["pages"] == 2

    def test_every_invocation_keeps_the_initial_request_id(self, queue, worker):
        request_id = request_bundle(queue, PDF_BUNDLE, 1)
        bundle_job = queue.claim()
        worker.run_descriptor(bundle_job)

        for expected in range(1, 6):
            (requeued,) = queue.list_queued(PDF_BUNDLE)
            assert requeued.initial_request_id == request_id
            assert requeued.options[DEFERRALS] == expected
            worker.run_descriptor(queue.claim_job(requeued.job_id))

        assert len(history_of(queue, request_id, CHILD_KINDS)) == 3
        worker.drain()
        final = [d for d in queue.history if d.kind == PDF_BUNDLE][-1]
        assert final.options[DEFERRALS] == 6
        assert final.initial_request_id == request_id

    def test_repeated_trigger_joins_request(self, queue, worker, results):
        first = request_bundle(queue, PDF_BUNDLE, 1)
        worker.run_once()
        assert request_bundle(queue, PDF_BUNDLE, 1) == first

        worker.drain()
        assert len(history_of(queue, first, CHILD_KINDS)) == 3
        assert results.request_result(first)["bundle"]["ok"] is True

    def test_competing_requests_run_one_after_the_other(self, queue, worker, results):
        now = time.time()
        for job_id, requested_at in (("first", now - 10), ("second", now - 5)):
            queue.push(
                JobDescriptor.create(
                    PDF_BUNDLE, 1, {WITH_DEPENDANTS: True, REQUESTED_AT: requested_at}, job_id=job_id
                )
            )

        worker.drain()

        assert results.request_result("first")["bundle"]["ok"] is True
        assert results.request_result("second")["bundle"]["ok"] is True
        first_done = max(i for i, d in enumerate(queue.history) if d.kind == PDF_BUNDLE and d.request_id == "first")
        second_children = [
            i for i, d in enumerate(queue.history) if d.kind in CHILD_KINDS and d.request_id == "second"
        ]
        assert len(second_children) == 3
        assert min(second_children) > first_done

    def test_slow_child_keeps_bundle_waiting_under_default_limits(self, queue, context, results, settings):
        defaults = BundleSettings(
            _env_file=None,
            database_path=settings.database_path,
            local_storage_root=settings.local_storage_root,
            upload_blocked=True,
        )
        worker = QueueWorker(queue, dataclasses.replace(context, settings=defaults))
        request_id = request_bundle(queue, PDF_BUNDLE, 1)
        worker.run_once()

        (slow,) = [d for d in queue.list_queued(JobKind.DOCUMENT_PDF) if d.entity_id == 10]
        queue.claim_job(slow.job_id)
        assert worker.drain(max_jobs=3000) == 3000

        assert "unit_bundle" not in results.read("unit:1")
        (waiting,) = queue.list_queued(PDF_BUNDLE)
        assert waiting.options[DEFERRALS] > 1000

        worker.run_descriptor(slow)
        worker.drain()
        assert queue.idle
        assert results.read("unit:1")["unit_bundle"]["pdf"]["status"] == "completed"
        assert results.request_result(request_id)["bundle"]["ok"] is True

    def test_failing_sibling_does_not_block_bundle(self, queue, worker, results, renderer, settings, monitor):
        renderer.fail_for.add("document:11")
        request_id = request_bundle(queue, PDF_BUNDLE, 1)

        worker.drain()
        assert queue.idle

        assert results.read("unit:1")["unit_bundle"]["pdf"]["status"] == "completed"
        assert not (bundle_folder(settings) / "ela_g2_m1_u1_l2_v1.pdf").exists()
        assert (bundle_folder(settings) / "ela_g2_m1_u1_l1_v1.pdf").exists()

        failed = results.read("document:11")["unit_bundle"]["pdf"]
        assert failed["errors"] == ["Lesson 2", "render failed for Lesson 2"]
        assert len(monitor.notifications) == settings.child_retry_limit

        slot = results.request_result(request_id)
        assert slot["bundle"]["ok"] is True
        assert sorted(outcome["ok"] for outcome in slot["jobs"].values()) == [False, True, True]


class TestGdocBundle:
    def test_full_flow(self, queue, worker, results, renderer, drive):
        request_id = request_bundle(queue, GDOC_BUNDLE, 1)
        worker.drain()

        link = results.read("unit:1")["unit_bundle"]["gdoc"]
        assert link["status"] == "completed"
        assert link["url"].startswith("https://drive.google.com/drive/folders/")
        assert results.request_result(request_id)["bundle"]["link"] == link["url"]

        folder_ids = {key: options["folder_id"] for kind, key, options in renderer.calls if kind == "gdoc"}
        assert folder_ids["document:10"] == folder_ids["document:11"]
        assert folder_ids["material:20"] != folder_ids["document:10"]
        assert link["url"].endswith(folder_ids["document:10"])

    def test_pdf_and_gdoc_bundles_share_unit_links(self, queue, worker, results):
        request_bundle(queue, PDF_BUNDLE, 1)
        request_bundle(queue, GDOC_BUNDLE, 1)
        worker.drain()
        assert set(results.read("unit:1")["unit_bundle"]) == {"pdf", "gdoc"}
        assert set(results.read("document:10")["unit_bundle"]) == {"pdf", "gdoc"}


class TestSqliteBackends:
    @pytest.fixture
    def sqlite_worker(self, tmp_path, queue, context):
        conn = sqlite3.connect(tmp_path / "bundles.db", check_same_thread=False)
        locks = DatabaseLockProvider(conn, poll_interval=0.001)
        sqlite_context = dataclasses.replace(context, results=SqliteResultStore(conn, locks), locks=locks)
        yield QueueWorker(queue, sqlite_context)
        conn.close()

    def test_full_flow(self, queue, sqlite_worker):
        request_id = request_bundle(queue, PDF_BUNDLE, 1)
        sqlite_worker.drain()

        results = sqlite_worker.context.results
        assert results.read("unit:1")["unit_bundle"]["pdf"]["status"] == "completed"
        assert results.request_result(request_id)["bundle"]["ok"] is True
        assert not sqlite_worker.context.locks.is_locked("bundle_generation_unit_bundle_pdf")
