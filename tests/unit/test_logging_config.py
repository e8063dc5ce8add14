"""
Unit tests for structured logging.
"""

import json
import logging

import pytest

from bucketfs.common.logging_config import (
    PerformanceTracker,
    StructuredFormatter,
    operation_id_ctx,
    operation_scope,
    setup_logging,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord("bucketfs.test", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Test JSON output."""

    def test_standard_fields(self):
        data = json.loads(StructuredFormatter().format(make_record()))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "bucketfs.test"
        assert "timestamp" in data
        assert "operation_id" not in data

    def test_extra_fields(self):
        record = make_record(extra_fields={"bucket": "wiki", "duration_ms": 1.5})
        data = json.loads(StructuredFormatter().format(record))
        assert data["bucket"] == "wiki"
        assert data["duration_ms"] == 1.5

    def test_operation_id(self):
        with operation_scope("op-123"):
            data = json.loads(StructuredFormatter().format(make_record()))
        assert data["operation_id"] == "op-123"


class TestOperationScope:
    """Test correlation IDs."""

    def test_generates_and_restores(self):
        with operation_scope() as operation_id:
            assert operation_id
            assert operation_id_ctx.get() == operation_id
        assert operation_id_ctx.get() is None

    def test_keeps_caller_id(self):
        with operation_scope("caller"):
            with operation_scope() as operation_id:
                assert operation_id == "caller"
            assert operation_id_ctx.get() == "caller"

    def test_explicit_scope_nests(self):
        with operation_scope("outer"):
            with operation_scope("inner"):
                assert operation_id_ctx.get() == "inner"
            assert operation_id_ctx.get() == "outer"

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with operation_scope("op"):
                raise RuntimeError("boom")
        assert operation_id_ctx.get() is None


class TestPerformanceTracker:
    """Test latency tracking."""

    def test_records_duration(self, caplog):
        logger = logging.getLogger("bucketfs.test")
        with caplog.at_level(logging.DEBUG, logger="bucketfs.test"):
            with PerformanceTracker("put_object", logger, key="x") as tracker:
                pass

        assert tracker.duration_ms is not None
        record = caplog.records[-1]
        assert record.getMessage().startswith("put_object took ")
        assert record.extra_fields["operation"] == "put_object"
        assert record.extra_fields["key"] == "x"

    def test_logs_failures(self, caplog):
        logger = logging.getLogger("bucketfs.test")
        with caplog.at_level(logging.DEBUG, logger="bucketfs.test"):
            with pytest.raises(ValueError):
                with PerformanceTracker("put_object", logger):
                    raise ValueError("boom")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "failed after" in record.getMessage()
        assert record.extra_fields["error_type"] == "ValueError"


class TestSetupLogging:
    """Test logging configuration."""

    def test_json_handler(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        try:
            setup_logging("DEBUG", json_format=True)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("botocore").level == logging.WARNING
        finally:
            root.handlers[:] = handlers
            root.setLevel(level)
