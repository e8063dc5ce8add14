"""
Classification of object store errors into operation statuses.
"""

import json
import logging
import warnings
from enum import Enum
from typing import Any, Mapping, Optional

from bucketfs.storage.client import ObjectStoreError
from bucketfs.storage.status import FAIL_INTERNAL, OperationStatus

logger = logging.getLogger(__name__)

MISSING_BUCKET_CODES = frozenset({"NoSuchBucket"})
MISSING_OBJECT_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


class ErrorKind(Enum):
    """What a provider error code means to the storage layer."""
    MISSING_BUCKET = "missing_bucket"
    MISSING_OBJECT = "missing_object"
    OTHER = "other"


class StorageBackendWarning(UserWarning):
    """Non-fatal diagnostic for unexpected object store failures."""
    pass


def classify(error: ObjectStoreError) -> ErrorKind:
    if error.code in MISSING_BUCKET_CODES:
        return ErrorKind.MISSING_BUCKET
    if error.code in MISSING_OBJECT_CODES:
        return ErrorKind.MISSING_OBJECT
    return ErrorKind.OTHER


class ErrorClassifier:
    """Turns unexpected object store errors into internal-failure statuses."""

    def __init__(self, backend_name: str):
        self.backend_name = backend_name

    def handle_exception(
        self,
        error: ObjectStoreError,
        status: Optional[OperationStatus],
        func: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> OperationStatus:
        """
        Record an unexpected error.

        Marks the status as an internal failure of this backend, logs the
        provider code and message, and emits a StorageBackendWarning so the
        failure is visible even without log access.

        Args:
            error: Error raised by the object store client
            status: Status to update (a new one is created if None)
            func: Name of the operation that failed
            params: Parameters of the operation, for the log

        Returns:
            The updated status
        """
        if status is None:
            status = OperationStatus.good()
        status.fatal(FAIL_INTERNAL, self.backend_name)

        if error.message:
            warnings.warn(f"{func} : {error.message}", StorageBackendWarning, stacklevel=3)

        logger.error(
            f"S3 backend: exception {error.code} in {func}: {error.message}",
            extra={"extra_fields": {
                "exception": error.code,
                "func": func,
                "params": json.dumps(dict(params or {}), default=str),
                "error_message": error.message or "",
                "backend": self.backend_name,
            }},
        )
        return status
