"""Tests for JobDescriptor."""

import dataclasses

import pytest

from curriculum_bundles.dedup import requested_at
from curriculum_bundles.queue import INITIAL_REQUEST_ID, WITH_DEPENDANTS, JobDescriptor, JobKind, new_job_id


class TestCreate:
    def test_assigns_job_id_and_coerces_kind(self):
        descriptor = JobDescriptor.create("unit_bundle_pdf", 12, {WITH_DEPENDANTS: True})
        assert descriptor.kind is JobKind.UNIT_BUNDLE_PDF
        assert len(descriptor.job_id) == 32
        assert descriptor.attempt == 1
        assert descriptor.with_dependants is True

    def test_explicit_job_id(self):
        assert JobDescriptor.create(JobKind.DOCUMENT_PDF, 1, job_id="abc").job_id == "abc"

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            JobDescriptor.create("lesson_zip", 1)

    def test_job_ids_are_unique(self):
        assert new_job_id() != new_job_id()


class TestImmutability:
    def test_fields_are_frozen(self):
        descriptor = JobDescriptor.create(JobKind.DOCUMENT_PDF, 1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            descriptor.entity_id = 2

    def test_options_are_read_only(self):
        descriptor = JobDescriptor.create(JobKind.DOCUMENT_PDF, 1, {"content_type": "unit_bundle"})
        with pytest.raises(TypeError):
            descriptor.options["content_type"] = "tm"

    def test_caller_dict_is_copied(self):
        options = {"content_type": "unit_bundle"}
        descriptor = JobDescriptor.create(JobKind.DOCUMENT_PDF, 1, options)
        options["content_type"] = "tm"
        assert descriptor.options["content_type"] == "unit_bundle"


class TestRequestIdentity:
    def test_original_trigger_is_its_own_request(self):
        descriptor = JobDescriptor.create(JobKind.UNIT_BUNDLE_PDF, 1)
        assert descriptor.initial_request_id is None
        assert descriptor.request_id == descriptor.job_id
        assert descriptor.belongs_to(descriptor.job_id)

    def test_tagged_job_reports_to_initial_request(self):
        descriptor = JobDescriptor.create(JobKind.DOCUMENT_PDF, 10, {INITIAL_REQUEST_ID: "req-1"})
        assert descriptor.request_id == "req-1"
        assert descriptor.belongs_to("req-1")
        assert not descriptor.belongs_to("req-2")

    def test_empty_initial_request_id_is_unset(self):
        descriptor = JobDescriptor.create(JobKind.DOCUMENT_PDF, 10, {INITIAL_REQUEST_ID: ""})
        assert descriptor.initial_request_id is None


class TestAttemptsAndSerialisation:
    def test_next_attempt_keeps_identity(self):
        descriptor = JobDescriptor.create(JobKind.MATERIAL_PDF, 20, {INITIAL_REQUEST_ID: "req-1"})
        again = descriptor.next_attempt()
        assert again.job_id == descriptor.job_id
        assert again.attempt == 2
        assert again.options == descriptor.options
        assert descriptor.attempt == 1

    def test_next_attempt_keeps_enqueue_time(self):
        descriptor = JobDescriptor(kind=JobKind.UNIT_BUNDLE_PDF, job_id="req-1", entity_id=1, enqueued_at=100.0)
        again = descriptor.next_attempt()
        assert again.enqueued_at == 100.0
        assert requested_at(again) == requested_at(descriptor) == 100.0

    def test_dict_form(self):
        descriptor = JobDescriptor.create(JobKind.MATERIAL_PDF, 20, {INITIAL_REQUEST_ID: "req-1"})
        data = descriptor.to_dict()
        assert data["kind"] == "material_pdf"
        assert data["options"] == {INITIAL_REQUEST_ID: "req-1"}
        assert JobDescriptor.from_dict(data) == descriptor
