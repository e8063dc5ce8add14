"""
Security zones: which containers must store their objects privately.

A container is secure when its marker object (RESTRICT_FILE at the top of
the container prefix) exists. The answer is cached per container for the
lifetime of the tracker; secure() and publish() update the cache directly.
In private mode every container is secure.
"""

import logging
import threading
from typing import Dict, Optional

from bucketfs.common.metrics import security_checks_total
from bucketfs.storage.client import ObjectStoreClient, ObjectStoreError
from bucketfs.storage.errors import ErrorClassifier, ErrorKind, classify
from bucketfs.storage.paths import PathResolver
from bucketfs.storage.status import FAIL_INVALID_PATH, OperationStatus

logger = logging.getLogger(__name__)

ACL_PRIVATE = "private"
ACL_PUBLIC_READ = "public-read"


class SecurityZoneTracker:
    """Per-container public/private state with a marker-object fallback."""

    def __init__(
        self,
        resolver: PathResolver,
        client: ObjectStoreClient,
        classifier: ErrorClassifier,
        private_mode: bool = False,
    ):
        """
        Initialize the tracker.

        Args:
            resolver: Path resolver used to locate marker objects
            client: Object store client
            classifier: Error classifier for failed marker updates
            private_mode: Treat every container as secure
        """
        self.resolver = resolver
        self.client = client
        self.classifier = classifier
        self.private_mode = private_mode
        self._is_secure: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def is_secure(self, container: str) -> bool:
        """Whether new objects in the container must be private."""
        if self.private_mode:
            security_checks_total.labels(source="private_mode").inc()
            return True

        with self._lock:
            cached = self._is_secure.get(container)
        if cached is not None:
            # We've already checked, secured or published this container
            security_checks_total.labels(source="cache").inc()
            return cached

        address = self.resolver.restrict_file_address(container)
        if address is None:
            return False

        logger.debug(
            f"Checking the presence of {address.key} in S3 bucket {address.bucket}"
        )

        try:
            is_secure = self.client.object_exists(address.bucket, address.key)
        except ObjectStoreError as e:
            # Assume insecure; don't remember, the next check may succeed
            logger.warning(
                f"Could not check security marker of container {container}: "
                f"{e.code} {e.message}"
            )
            security_checks_total.labels(source="error").inc()
            return False

        security_checks_total.labels(source="remote").inc()
        self._remember(container, is_secure)
        return is_secure

    def acl_for(self, container: str) -> str:
        return ACL_PRIVATE if self.is_secure(container) else ACL_PUBLIC_READ

    def secure(self, container: str) -> OperationStatus:
        """Create the marker object, making the container private."""
        status = OperationStatus.good()
        address = self.resolver.restrict_file_address(container)
        if address is None:
            status.fatal(FAIL_INVALID_PATH, container)
            return status

        logger.debug(f"Creating {address.key} in S3 bucket {address.bucket}")

        try:
            self.client.put_object(address.bucket, address.key, b"")
        except ObjectStoreError as e:
            self.classifier.handle_exception(
                e, status, "secure", {"container": container})

        self._remember(container, True)
        return status

    def publish(self, container: str) -> OperationStatus:
        """Delete the marker object, making the container public."""
        status = OperationStatus.good()
        address = self.resolver.restrict_file_address(container)
        if address is None:
            status.fatal(FAIL_INVALID_PATH, container)
            return status

        logger.debug(f"Deleting {address.key} from S3 bucket {address.bucket}")

        try:
            self.client.delete_object(address.bucket, address.key)
        except ObjectStoreError as e:
            # Some S3-compatible stores report deleting a missing key
            if classify(e) is not ErrorKind.MISSING_OBJECT:
                self.classifier.handle_exception(
                    e, status, "publish", {"container": container})

        self._remember(container, False)
        return status

    def forget(self, container: Optional[str] = None) -> None:
        """Drop cached state for one container, or for all of them."""
        with self._lock:
            if container is None:
                self._is_secure.clear()
            else:
                self._is_secure.pop(container, None)

    def cached_state(self, container: str) -> Optional[bool]:
        """Cached state of a container (None when unknown)."""
        with self._lock:
            return self._is_secure.get(container)

    def _remember(self, container: str, is_secure: bool) -> None:
        with self._lock:
            self._is_secure[container] = is_secure
