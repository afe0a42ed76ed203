"""Tests for the bundle error hierarchy."""

import pytest

from curriculum_bundles.core.errors import (
    BundleDeadlineExceeded,
    BundleError,
    ConfigError,
    EntityNotFoundError,
    ErrorCategory,
    HookNotImplementedError,
    LockTimeoutError,
    QueueError,
    RenderError,
    StorageError,
    is_retryable,
)


class TestBundleError:
    def test_defaults(self):
        error = BundleError("boom")
        assert error.message == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_cause_is_chained(self):
        cause = ValueError("bad")
        error = BundleError("wrapped", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "bad"

    def test_with_context_sets_known_fields_and_metadata(self):
        error = StorageError("upload failed").with_context(entity_id=12, job_id="j1", key="documents/a.pdf")
        assert error.context.entity_id == 12
        assert error.context.job_id == "j1"
        assert error.context.metadata == {"key": "documents/a.pdf"}

    def test_to_dict(self):
        error = RenderError("renderer down").with_context(job_kind="document_pdf")
        data = error.to_dict()
        assert data["error_type"] == "RenderError"
        assert data["category"] == "RENDER"
        assert data["retryable"] is True
        assert data["context"] == {"job_kind": "document_pdf"}

    def test_repr(self):
        assert repr(QueueError("x")) == "QueueError('x', category=QUEUE)"


class TestSubclasses:
    def test_hook_not_implemented_is_programmer_error(self):
        error = HookNotImplementedError("UnitBundlePdfJob", "generate_bundle")
        assert isinstance(error, NotImplementedError)
        assert error.category == ErrorCategory.PROGRAMMER
        assert str(error) == "UnitBundlePdfJob must implement generate_bundle"

    def test_entity_not_found(self):
        error = EntityNotFoundError("Unit", 7)
        assert str(error) == "Unit not found: 7"
        assert error.entity_type == "Unit"
        assert error.entity_id == 7

    def test_lock_timeout_message(self):
        error = LockTimeoutError("bundle_generation_unit_bundle_pdf", 5)
        assert "bundle_generation_unit_bundle_pdf" in str(error)
        assert error.retryable is True

    def test_deadline_exceeded_carries_deferrals(self):
        error = BundleDeadlineExceeded("gave up", deferrals=12)
        assert error.deferrals == 12
        assert error.category == ErrorCategory.ORCHESTRATION

    def test_retryable_override(self):
        assert StorageError("missing", retryable=False).retryable is False


class TestIsRetryable:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (RenderError("x"), True),
            (StorageError("x"), True),
            (ConfigError("x"), False),
            (EntityNotFoundError("Unit", 1), False),
            (HookNotImplementedError("Job", "perform"), False),
            (RuntimeError("x"), True),
        ],
    )
    def test_classification(self, error, expected):
        assert is_retryable(error) is expected
