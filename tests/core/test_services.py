"""Tests for the external service adapters."""

import io

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError
from botocore.response import StreamingBody
from botocore.stub import Stubber

from conftest import make_pdf
from curriculum_bundles.core.errors import EntityNotFoundError, StorageError
from curriculum_bundles.services import (
    DriveService,
    HierarchyService,
    InMemoryHierarchy,
    LocalStorage,
    LoggingMonitor,
    MemoryDrive,
    ObjectStorage,
    RecordingMonitor,
    S3Storage,
    count_pages,
    drive_folder_url,
)


# ── Storage ──────────────────────────────────────────────────────────────


class TestLocalStorage:
    def test_upload_and_read_back(self, tmp_path):
        storage = LocalStorage(tmp_path)
        url = storage.upload("bundles/unit/a.pdf", b"%PDF-1.4", "application/pdf")
        assert url.startswith("file://")
        assert (tmp_path / "bundles/unit/a.pdf").read_bytes() == b"%PDF-1.4"
        assert storage.read_back(url) == b"%PDF-1.4"

    def test_url_for_folder(self, tmp_path):
        storage = LocalStorage(tmp_path)
        assert storage.url_for("bundles/unit") == (tmp_path / "bundles/unit").resolve().as_uri()

    def test_read_back_missing_is_not_retryable(self, tmp_path):
        storage = LocalStorage(tmp_path)
        with pytest.raises(StorageError) as exc_info:
            storage.read_back((tmp_path / "nope.pdf").as_uri())
        assert exc_info.value.retryable is False

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(LocalStorage(tmp_path), ObjectStorage)


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


class TestS3Storage:
    def test_upload_puts_object(self, s3_client):
        storage = S3Storage("units", client=s3_client)
        with Stubber(s3_client) as stubber:
            stubber.add_response(
                "put_object",
                {},
                {
                    "Bucket": "units",
                    "Key": "documents/a.pdf",
                    "Body": b"pdf",
                    "CacheControl": "public, max-age=0, must-revalidate",
                    "ContentType": "application/pdf",
                },
            )
            url = storage.upload("/documents/a.pdf", b"pdf", "application/pdf")
        assert url == "https://units.s3.us-east-1.amazonaws.com/documents/a.pdf"

    def test_read_back_parses_key_from_url(self, s3_client):
        storage = S3Storage("units", client=s3_client)
        with Stubber(s3_client) as stubber:
            stubber.add_response(
                "get_object",
                {"Body": StreamingBody(io.BytesIO(b"pdf-bytes"), len(b"pdf-bytes"))},
                {"Bucket": "units", "Key": "documents/a b.pdf"},
            )
            data = storage.read_back("https://units.s3.us-east-1.amazonaws.com/documents/a%20b.pdf")
        assert data == b"pdf-bytes"

    def test_path_style_endpoint(self, s3_client):
        storage = S3Storage("units", endpoint_url="http://localhost:9000/", client=s3_client)
        assert storage.url_for("bundles/u1") == "http://localhost:9000/units/bundles/u1"
        assert storage._key_from_url("http://localhost:9000/units/bundles/u1/a.pdf") == "bundles/u1/a.pdf"

    def test_missing_object_is_not_retryable(self, s3_client):
        storage = S3Storage("units", client=s3_client)
        with Stubber(s3_client) as stubber:
            stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
            with pytest.raises(StorageError) as exc_info:
                storage.read_back("https://units.s3.us-east-1.amazonaws.com/missing.pdf")
        assert exc_info.value.retryable is False

    def test_unreachable_endpoint_is_wrapped(self, s3_client, monkeypatch):
        storage = S3Storage("units", client=s3_client)

        def unreachable(**kwargs):
            raise EndpointConnectionError(endpoint_url="https://units.s3.us-east-1.amazonaws.com")

        monkeypatch.setattr(s3_client, "get_object", unreachable)
        with pytest.raises(StorageError) as exc_info:
            storage.read_back("https://units.s3.us-east-1.amazonaws.com/documents/a.pdf")
        assert exc_info.value.retryable is True
        assert exc_info.value.context.metadata["key"] == "documents/a.pdf"
        assert isinstance(exc_info.value.__cause__, EndpointConnectionError)

    def test_upload_failure_is_retryable(self, s3_client):
        storage = S3Storage("units", client=s3_client)
        with Stubber(s3_client) as stubber:
            stubber.add_client_error("put_object", service_error_code="SlowDown", http_status_code=503)
            with pytest.raises(StorageError) as exc_info:
                storage.upload("a.pdf", b"pdf")
        assert exc_info.value.retryable is True
        assert exc_info.value.context.metadata["key"] == "a.pdf"


# ── Render helpers ───────────────────────────────────────────────────────


class TestCountPages:
    def test_counts_pages(self):
        assert count_pages(make_pdf(3)) == 3

    def test_unparseable_bytes_count_as_zero(self):
        assert count_pages(b"definitely not a pdf") == 0


# ── Drive / hierarchy / monitoring ───────────────────────────────────────


class TestMemoryDrive:
    def test_same_name_same_parent_is_idempotent(self):
        drive = MemoryDrive()
        first = drive.create_folder("bundles", "root-folder")
        assert drive.create_folder("bundles", "root-folder") == first
        assert drive.create_folder("bundles", "other") != first

    def test_url_for(self):
        drive = MemoryDrive()
        assert drive.url_for("abc") == drive_folder_url("abc") == "https://drive.google.com/drive/folders/abc"
        assert isinstance(drive, DriveService)


class TestInMemoryHierarchy:
    def test_lookups(self, unit):
        hierarchy = InMemoryHierarchy([unit])
        assert hierarchy.unit(1) is unit
        assert hierarchy.document(11).name == "Lesson 2"
        assert hierarchy.material(20).identifier == "vocab-cards"
        assert isinstance(hierarchy, HierarchyService)

    @pytest.mark.parametrize("method, entity_type", [("unit", "Unit"), ("document", "Document"), ("material", "Material")])
    def test_missing_entity(self, method, entity_type):
        with pytest.raises(EntityNotFoundError, match=f"{entity_type} not found: 99"):
            getattr(InMemoryHierarchy(), method)(99)


class TestMonitors:
    def test_recording_monitor(self):
        monitor = RecordingMonitor()
        error = StorageError("down")
        monitor.notify(error, {"unit_id": 1})
        assert monitor.notifications == [(error, {"unit_id": 1})]

    def test_logging_monitor_accepts_any_exception(self):
        LoggingMonitor().notify(StorageError("down").with_context(entity_id=1), {"unit_id": 1})
        LoggingMonitor().notify(RuntimeError("plain"), {"unit_id": 1})
