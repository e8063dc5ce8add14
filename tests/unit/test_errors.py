"""
Unit tests for error classification.
"""

import logging

import pytest

from bucketfs.storage.client import ObjectStoreError
from bucketfs.storage.errors import (
    ErrorClassifier,
    ErrorKind,
    StorageBackendWarning,
    classify,
)
from bucketfs.storage.status import FAIL_INTERNAL, OperationStatus


class TestClassify:
    """Test mapping of provider codes."""

    def test_missing_bucket(self):
        assert classify(ObjectStoreError("NoSuchBucket")) is ErrorKind.MISSING_BUCKET

    @pytest.mark.parametrize("code", ["NoSuchKey", "NotFound", "404"])
    def test_missing_object(self, code):
        assert classify(ObjectStoreError(code)) is ErrorKind.MISSING_OBJECT

    @pytest.mark.parametrize("code", ["AccessDenied", "SlowDown", "InternalError", ""])
    def test_other(self, code):
        assert classify(ObjectStoreError(code)) is ErrorKind.OTHER


class TestErrorClassifier:
    """Test handling of unexpected errors."""

    def test_marks_internal_failure_with_backend_name(self):
        classifier = ErrorClassifier("my-s3")
        with pytest.warns(StorageBackendWarning, match="copy : Access Denied"):
            status = classifier.handle_exception(
                ObjectStoreError("AccessDenied", "Access Denied", 403),
                OperationStatus.good(), "copy", {"src": "a", "dst": "b"})

        assert not status.ok
        assert status.errors[0].key == FAIL_INTERNAL
        assert status.errors[0].params == ("my-s3",)

    def test_creates_status_when_missing(self):
        classifier = ErrorClassifier("my-s3")
        with pytest.warns(StorageBackendWarning):
            status = classifier.handle_exception(
                ObjectStoreError("SlowDown", "Reduce your request rate"), None, "stat")
        assert status.has_message(FAIL_INTERNAL)

    def test_updates_given_status(self):
        classifier = ErrorClassifier("my-s3")
        status = OperationStatus.good()
        with pytest.warns(StorageBackendWarning):
            returned = classifier.handle_exception(
                ObjectStoreError("InternalError", "We encountered an internal error"),
                status, "create")
        assert returned is status

    def test_no_warning_without_message(self, recwarn):
        """Errors without a provider message are only logged."""
        classifier = ErrorClassifier("my-s3")
        status = classifier.handle_exception(ObjectStoreError("InternalError"), None, "delete")
        assert not status.ok
        assert not [w for w in recwarn if issubclass(w.category, StorageBackendWarning)]

    def test_logs_code_and_params(self, caplog):
        classifier = ErrorClassifier("my-s3")
        with caplog.at_level(logging.ERROR, logger="bucketfs.storage.errors"):
            with pytest.warns(StorageBackendWarning):
                classifier.handle_exception(
                    ObjectStoreError("AccessDenied", "Access Denied"),
                    None, "delete", {"src": "local-public/x.png"})

        record = caplog.records[-1]
        assert "AccessDenied" in record.getMessage()
        assert record.extra_fields["func"] == "delete"
        assert "local-public/x.png" in record.extra_fields["params"]
        assert record.extra_fields["backend"] == "my-s3"
