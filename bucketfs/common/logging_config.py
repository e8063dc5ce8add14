"""
Structured logging for the storage backend.

Provides:
- JSON records for log aggregation
- An operation ID shared by every remote call made for one caller operation
- Latency logging for object store and download round trips
"""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

# Loggers that flood DEBUG output with wire-level detail
QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3", "httpx", "httpcore")

operation_id_ctx: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)


class StructuredFormatter(logging.Formatter):
    """
    Render records as one JSON object per line.

    Fields passed as extra={"extra_fields": {...}} are merged into the
    top-level object, so bucket, key and duration become searchable.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            "thread": record.threadName,
        }

        operation_id = operation_id_ctx.get()
        if operation_id:
            payload["operation_id"] = operation_id

        payload.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class PerformanceTracker:
    """
    Time a remote round trip and log its duration.

    Usage:
        with PerformanceTracker("uploading x.png to S3", logger, bucket=bucket):
            client.put_object(...)

    Exceptions are logged at WARNING and propagate unchanged; callers decide
    whether they are failures.
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.DEBUG,
        **fields,
    ):
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.fields = fields
        self._started: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> "PerformanceTracker":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.perf_counter() - self._started) * 1000

        fields = dict(self.fields, operation=self.operation, duration_ms=round(self.duration_ms, 2))
        if exc_type is None:
            self.logger.log(
                self.log_level,
                f"{self.operation} took {self.duration_ms:.1f} ms",
                extra={"extra_fields": fields},
            )
            return

        fields["error_type"] = exc_type.__name__
        fields["error"] = str(exc_val)
        self.logger.warning(
            f"{self.operation} failed after {self.duration_ms:.1f} ms: {exc_val}",
            extra={"extra_fields": fields},
        )


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Install a single stderr handler on the root logger.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON records if True, plain text otherwise
    """
    level = logging.getLevelName(log_level.upper())

    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter() if json_format
        else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def operation_scope(operation_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag every record logged inside the block with one operation ID.

    Without an explicit ID the caller's ID is kept, or a new one is
    generated. The previous ID is restored on exit.
    """
    token = operation_id_ctx.set(operation_id or operation_id_ctx.get() or uuid.uuid4().hex)
    try:
        yield operation_id_ctx.get()
    finally:
        operation_id_ctx.reset(token)
