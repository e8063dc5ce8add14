"""
Object operations: create, store, copy, delete and stat against the remote store.

Every mutating operation returns an OperationStatus. Successful mutations
invalidate the local cache entry of the storage path they wrote to.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Union

from bucketfs.common.logging_config import PerformanceTracker
from bucketfs.common.metrics import track_storage_operation
from bucketfs.storage.client import ObjectStoreClient, ObjectStoreError
from bucketfs.storage.errors import ErrorClassifier, ErrorKind, classify
from bucketfs.storage.paths import PathResolver
from bucketfs.storage.security import SecurityZoneTracker
from bucketfs.storage.status import (
    FAIL_COPY,
    FAIL_CREATE,
    FAIL_DELETE,
    FAIL_INVALID_PATH,
    FAIL_STORE,
    OperationStatus,
)
from bucketfs.storage.uploads import BytesSource, FileSource, UploadSource

logger = logging.getLogger(__name__)

SHA1_METADATA_KEY = "sha1base36"
SERVER_SIDE_ENCRYPTION = "AES256"
DEFAULT_PRESIGNED_URL_TTL = 86400  # 1 day

# Headers passed through to the object on create/store
CREATE_HEADERS = (
    "Cache-Control",
    "Content-Disposition",
    "Content-Encoding",
    "Content-Language",
    "Expires",
)

# Headers passed through on copy (the source's type is not re-guessed)
COPY_HEADERS = CREATE_HEADERS + ("Content-Type",)


@dataclass
class FileStat:
    """Information about a stored object."""
    mtime: datetime
    size: int
    etag: str
    sha1: str = ""

    @property
    def timestamp(self) -> str:
        """Modification time as YYYYMMDDHHMMSS (UTC)."""
        mtime = self.mtime
        if mtime.tzinfo is not None:
            mtime = mtime.astimezone(timezone.utc)
        return mtime.strftime("%Y%m%d%H%M%S")


def _pick_headers(headers: Optional[Mapping[str, str]], names) -> dict:
    headers = headers or {}
    return {name: headers[name] for name in names if headers.get(name)}


class ObjectOperations:
    """Executes single-object operations against the remote store."""

    def __init__(
        self,
        resolver: PathResolver,
        security: SecurityZoneTracker,
        client: ObjectStoreClient,
        classifier: ErrorClassifier,
        invalidate: Callable[[str], None],
        encryption: bool = False,
    ):
        """
        Initialize the executor.

        Args:
            resolver: Storage path resolver
            security: Security zone tracker supplying ACLs
            client: Object store client
            classifier: Error classifier for unexpected failures
            invalidate: Called with a storage path after it was modified
            encryption: Request server-side encryption for new objects
        """
        self.resolver = resolver
        self.security = security
        self.client = client
        self.classifier = classifier
        self.invalidate = invalidate
        self.encryption = encryption

    @property
    def server_side_encryption(self) -> Optional[str]:
        return SERVER_SIDE_ENCRYPTION if self.encryption else None

    @track_storage_operation("create")
    def create(
        self,
        dst: str,
        content: Union[bytes, str, UploadSource],
        headers: Optional[Mapping[str, str]] = None,
    ) -> OperationStatus:
        """
        Create an object from an in-memory buffer or an upload source.

        Args:
            dst: Destination storage path
            content: bytes/str, BytesSource or FileSource
            headers: Optional HTTP headers

        Returns:
            OperationStatus
        """
        if not isinstance(content, (BytesSource, FileSource)):
            content = BytesSource.from_content(content)
        return self._upload(dst, content, headers)

    @track_storage_operation("store")
    def store(
        self,
        src: str,
        dst: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> OperationStatus:
        """Same as create(), but the content is read from a local file."""
        return self._upload(dst, FileSource(src), headers)

    def _upload(
        self,
        dst: str,
        source: UploadSource,
        headers: Optional[Mapping[str, str]],
    ) -> OperationStatus:
        status = OperationStatus.good()

        address = self.resolver.resolve_storage_path(dst)
        if address is None:
            status.fatal(FAIL_INVALID_PATH, dst)
            return status

        headers = headers or {}
        try:
            sha1 = source.sha1_base36()
        except OSError as e:
            logger.error(f"Cannot read local file {source.path} for {dst}: {e}")
            status.fatal(FAIL_STORE, str(source.path), dst)
            return status

        content_type = headers.get("Content-Type") or source.guess_content_type(dst)
        object_headers = _pick_headers(headers, CREATE_HEADERS)
        object_headers["Content-Type"] = content_type

        logger.debug(
            f"Saving {address.key} in S3 bucket {address.bucket} "
            f"(sha1 of the original file: {sha1}, Content-Type: {content_type})"
        )

        try:
            with PerformanceTracker(
                f"uploading {address.key} to S3", logger,
                bucket=address.bucket, key=address.key,
            ), source.open_body() as body:
                self.client.put_object(
                    address.bucket,
                    address.key,
                    body,
                    acl=self.security.acl_for(address.container),
                    metadata={SHA1_METADATA_KEY: sha1},
                    headers=object_headers,
                    server_side_encryption=self.server_side_encryption,
                )
        except OSError as e:
            logger.error(f"Cannot read local file for {dst}: {e}")
            status.fatal(FAIL_STORE, str(getattr(source, "path", "")), dst)
            return status
        except ObjectStoreError as e:
            if classify(e) is ErrorKind.MISSING_BUCKET:
                status.fatal(FAIL_CREATE, dst)
            else:
                self.classifier.handle_exception(
                    e, status, "create", {"dst": dst, "headers": dict(headers)})
            return status

        self.invalidate(dst)
        return status

    @track_storage_operation("copy")
    def copy(
        self,
        src: str,
        dst: str,
        headers: Optional[Mapping[str, str]] = None,
        ignore_missing_source: bool = False,
    ) -> OperationStatus:
        """
        Server-side copy of an object; metadata (including sha1) is kept.

        Args:
            src: Source storage path
            dst: Destination storage path
            headers: Optional HTTP headers; "E-Tag" and "If-Modified-Since"
                make the copy conditional
            ignore_missing_source: Treat a missing source as success

        Returns:
            OperationStatus
        """
        status = OperationStatus.good()

        src_address = self.resolver.resolve_storage_path(src)
        dst_address = self.resolver.resolve_storage_path(dst)
        if src_address is None:
            status.fatal(FAIL_INVALID_PATH, src)
        if dst_address is None:
            status.fatal(FAIL_INVALID_PATH, dst)
        if not status.ok:
            return status

        logger.debug(
            f"Copying {src_address.key} from S3 bucket {src_address.bucket} "
            f"to {dst_address.key} in S3 bucket {dst_address.bucket}"
        )

        headers = headers or {}
        try:
            with PerformanceTracker(
                f"copying S3 object {src_address.key} to {dst_address.key}", logger,
                src_bucket=src_address.bucket, dst_bucket=dst_address.bucket,
            ):
                self.client.copy_object(
                    src_address.bucket,
                    src_address.key,
                    dst_address.bucket,
                    dst_address.key,
                    acl=self.security.acl_for(dst_address.container),
                    headers=_pick_headers(headers, COPY_HEADERS),
                    if_match=headers.get("E-Tag"),
                    if_modified_since=headers.get("If-Modified-Since"),
                    server_side_encryption=self.server_side_encryption,
                    metadata_directive="COPY",
                )
        except ObjectStoreError as e:
            kind = classify(e)
            if kind is ErrorKind.MISSING_BUCKET:
                status.fatal(FAIL_COPY, src, dst)
            elif kind is ErrorKind.MISSING_OBJECT:
                if not ignore_missing_source:
                    status.fatal(FAIL_COPY, src, dst)
            else:
                self.classifier.handle_exception(
                    e, status, "copy", {"src": src, "dst": dst, "headers": dict(headers)})
            return status

        self.invalidate(dst)
        return status

    @track_storage_operation("delete")
    def delete(self, src: str, ignore_missing_source: bool = False) -> OperationStatus:
        """
        Delete an object.

        Args:
            src: Storage path
            ignore_missing_source: Treat a missing object as success

        Returns:
            OperationStatus
        """
        status = OperationStatus.good()

        address = self.resolver.resolve_storage_path(src)
        if address is None:
            status.fatal(FAIL_INVALID_PATH, src)
            return status

        logger.debug(f"Deleting {address.key} from S3 bucket {address.bucket}")

        try:
            with PerformanceTracker(
                f"deleting {address.key} from S3", logger,
                bucket=address.bucket, key=address.key,
            ):
                self.client.delete_object(address.bucket, address.key)
        except ObjectStoreError as e:
            kind = classify(e)
            if kind is ErrorKind.MISSING_BUCKET:
                status.fatal(FAIL_DELETE, src)
            elif kind is ErrorKind.MISSING_OBJECT:
                if ignore_missing_source:
                    # Gone remotely; a local copy would be stale
                    self.invalidate(src)
                else:
                    status.fatal(FAIL_DELETE, src)
            else:
                self.classifier.handle_exception(e, status, "delete", {"src": src})
            return status

        self.invalidate(src)
        return status

    @track_storage_operation("stat")
    def stat(self, src: str) -> Optional[FileStat]:
        """
        Get information about an object.

        Returns:
            FileStat, or None if the path is invalid, the object does not
            exist or the remote store failed (the failure is logged)
        """
        address = self.resolver.resolve_storage_path(src)
        if address is None:
            return None

        logger.debug(
            f"Obtaining information about {address.key} in S3 bucket {address.bucket}"
        )

        try:
            with PerformanceTracker(
                f"reading S3 object info of {address.key}", logger,
                bucket=address.bucket, key=address.key,
            ):
                head = self.client.head_object(address.bucket, address.key)
        except ObjectStoreError as e:
            if classify(e) is not ErrorKind.MISSING_OBJECT:
                self.classifier.handle_exception(e, None, "stat", {"src": src})
            return None

        return FileStat(
            mtime=head.last_modified,
            size=int(head.size),
            etag=head.etag,
            sha1=head.metadata.get(SHA1_METADATA_KEY, ""),
        )

    def get_presigned_url(self, src: str, ttl: int = DEFAULT_PRESIGNED_URL_TTL) -> Optional[str]:
        """
        Get a presigned GET URL for an object.

        Returns:
            URL, or None if the path is invalid or the remote call failed
        """
        address = self.resolver.resolve_storage_path(src)
        if address is None:
            return None

        logger.debug(
            f"Obtaining presigned S3 URL of {address.key} in S3 bucket {address.bucket}"
        )

        try:
            return self.client.presigned_get_url(address.bucket, address.key, ttl)
        except ObjectStoreError as e:
            logger.warning(f"Could not presign URL for {src}: {e.code} {e.message}")
            return None

    def bucket_exists(self, src: str) -> bool:
        """Whether the bucket behind a storage path exists."""
        bucket = self.resolver.bucket_for_storage_path(src)
        if bucket is None:
            return False
        try:
            with PerformanceTracker(f"checking S3 bucket {bucket}", logger, bucket=bucket):
                return self.client.bucket_exists(bucket)
        except ObjectStoreError as e:
            logger.warning(f"Could not check bucket {bucket}: {e.code} {e.message}")
            return False
