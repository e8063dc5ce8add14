"""
S3 storage backend.

Maps storage paths onto S3 objects:
- container "local-public" configured as "my-bucket/wiki/public"
- storage path "local-public/a/ab/Example.png"
- object s3://my-bucket/wiki/public/a/ab/Example.png

Directories are virtual. Containers holding a ".htsecure" object at the top
of their prefix are private: objects stored or copied into them get
ACL=private instead of public-read.
"""

import logging
from typing import Dict, Iterable, Iterator, Mapping, Optional, Union

import httpx

from bucketfs.common.logging_config import operation_scope
from bucketfs.config.settings import Settings
from bucketfs.storage.adapter import StorageAdapter
from bucketfs.storage.client import Boto3ObjectStoreClient, ObjectStoreClient, ObjectStoreError
from bucketfs.storage.containers import ContainerRegistry
from bucketfs.storage.downloads import LocalDownloadCoordinator
from bucketfs.storage.errors import ErrorClassifier
from bucketfs.storage.listing import ListingEmulator
from bucketfs.storage.local_cache import DirectoryLocalCache, LocalCacheEntry, LocalCacheStore
from bucketfs.storage.operations import DEFAULT_PRESIGNED_URL_TTL, FileStat, ObjectOperations
from bucketfs.storage.paths import PathResolver
from bucketfs.storage.security import ACL_PRIVATE, ACL_PUBLIC_READ, SecurityZoneTracker
from bucketfs.storage.status import FAIL_INVALID_PATH, OperationStatus
from bucketfs.storage.uploads import UploadSource

logger = logging.getLogger(__name__)


class S3Storage(StorageAdapter):
    """
    S3-based storage implementation.

    Organizes files of several logical containers in one or more buckets.
    """

    directories_are_virtual = True

    def __init__(
        self,
        container_paths: Mapping[str, str],
        name: str = "s3-backend",
        client: Optional[ObjectStoreClient] = None,
        private_mode: bool = False,
        encryption: bool = False,
        local_cache: Optional[LocalCacheStore] = None,
        http_client: Optional[httpx.Client] = None,
        presigned_url_ttl: int = DEFAULT_PRESIGNED_URL_TTL,
        download_timeout: float = 60.0,
        download_retries: int = 3,
        region: Optional[str] = None,
        use_https: bool = True,
        endpoint_url: Optional[str] = None,
        access_key_id: str = "",
        secret_access_key: str = "",
        session_token: str = "",
    ):
        """
        Initialize S3 storage.

        Args:
            container_paths: Container name -> "bucket" or "bucket/prefix"
            name: Backend name, reported in internal-failure statuses
            client: Object store client (a boto3 client is built if None)
            private_mode: Make every new object private
            encryption: Server-side encryption (implies HTTPS)
            local_cache: Cache store for local copies
            http_client: httpx client for presigned URL downloads
            presigned_url_ttl: Lifetime of presigned URLs, in seconds
            download_timeout: Download timeout, in seconds
            download_retries: Attempts per download on transport errors
            region: AWS region
            use_https: Use HTTPS for the object store endpoint
            endpoint_url: Custom endpoint for S3-compatible services
            access_key_id: Access key overriding the default credential chain
            secret_access_key: Secret key
            session_token: Session token

        Raises:
            StorageMisconfiguredError: If container_paths is empty
        """
        self.name = name
        self.registry = ContainerRegistry(container_paths)
        self.encryption = encryption
        self.use_https = encryption or use_https
        self.private_mode = private_mode
        self.presigned_url_ttl = presigned_url_ttl

        if client is None:
            client = Boto3ObjectStoreClient(
                region=region,
                use_https=self.use_https,
                endpoint_url=endpoint_url,
                access_key=access_key_id,
                secret_key=secret_access_key,
                session_token=session_token,
            )
        self.client = client

        self.local_cache = local_cache if local_cache is not None else DirectoryLocalCache()
        self.resolver = PathResolver(self.registry)
        self.classifier = ErrorClassifier(name)
        self.security = SecurityZoneTracker(
            self.resolver, self.client, self.classifier, private_mode=private_mode)
        self.operations = ObjectOperations(
            self.resolver,
            self.security,
            self.client,
            self.classifier,
            invalidate=self.local_cache.invalidate,
            encryption=encryption,
        )
        self.listing = ListingEmulator(self.resolver, self.client, self.classifier)
        self.downloads = LocalDownloadCoordinator(
            self.local_cache,
            self.resolver,
            presign=self.get_http_url,
            http_client=http_client,
            timeout=download_timeout,
            retries=download_retries,
        )

        logger.info(
            f"S3 backend {name}: found S3 buckets: {', '.join(self.registry.buckets)}"
            + (" (private mode, new S3 objects will be private)" if private_mode else "")
        )

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "S3Storage":
        """Build the backend from application settings."""
        params = dict(
            container_paths=settings.container_paths,
            name=settings.backend_name,
            private_mode=settings.private_mode,
            encryption=settings.aws_encryption,
            presigned_url_ttl=settings.presigned_url_ttl,
            download_timeout=settings.download_timeout,
            download_retries=settings.download_retries,
            region=settings.aws_region,
            use_https=settings.use_https,
            endpoint_url=settings.aws_endpoint_url,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            session_token=settings.aws_session_token,
        )
        if "client" not in overrides:
            overrides["client"] = Boto3ObjectStoreClient(
                region=settings.aws_region,
                use_https=settings.use_https,
                endpoint_url=settings.aws_endpoint_url,
                access_key=settings.aws_access_key_id,
                secret_key=settings.aws_secret_access_key,
                session_token=settings.aws_session_token,
                max_attempts=settings.aws_max_attempts,
                connect_timeout=settings.aws_connect_timeout,
                read_timeout=settings.aws_read_timeout,
            )
        if "local_cache" not in overrides:
            overrides["local_cache"] = DirectoryLocalCache(
                settings.local_cache_path, settings.local_cache_min_size)
        params.update(overrides)
        return cls(**params)

    # ========== File operations ==========

    def create(
        self,
        dst: str,
        content: Union[bytes, str, UploadSource],
        headers: Optional[Mapping[str, str]] = None,
    ) -> OperationStatus:
        """Create a file from an in-memory buffer."""
        return self.operations.create(dst, content, headers)

    def store(
        self,
        src: str,
        dst: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> OperationStatus:
        """Store a local file."""
        return self.operations.store(src, dst, headers)

    def copy(
        self,
        src: str,
        dst: str,
        headers: Optional[Mapping[str, str]] = None,
        ignore_missing_source: bool = False,
    ) -> OperationStatus:
        """Copy a file within the backend."""
        return self.operations.copy(src, dst, headers, ignore_missing_source)

    def delete(self, src: str, ignore_missing_source: bool = False) -> OperationStatus:
        """Delete a file."""
        return self.operations.delete(src, ignore_missing_source)

    def stat(self, src: str) -> Optional[FileStat]:
        """Get file information."""
        return self.operations.stat(src)

    def file_exists(self, src: str) -> bool:
        return self.stat(src) is not None

    def get_http_url(self, src: str) -> Optional[str]:
        """Presigned URL of a file, valid for presigned_url_ttl seconds."""
        return self.operations.get_presigned_url(src, self.presigned_url_ttl)

    def is_path_usable(self, path: str) -> bool:
        """Whether the bucket of a storage path exists."""
        return self.operations.bucket_exists(path)

    # ========== Directories ==========

    def directory_exists(self, container: str, dir: str = "") -> bool:
        return self.listing.directory_exists(container, dir)

    def list_files(self, container: str, dir: str = "", top_only: bool = False) -> Iterator[str]:
        return self.listing.list_files(container, dir, top_only)

    def list_directories(self, container: str, dir: str = "", top_only: bool = False) -> Iterator[str]:
        return self.listing.list_directories(container, dir, top_only)

    def prepare(
        self,
        container: str,
        dir: str = "",
        no_access: bool = False,
        no_listing: bool = False,
        access: Optional[bool] = None,
        **params,
    ) -> OperationStatus:
        """
        Make a container usable: create its bucket if needed, then publish
        or secure it.

        Args:
            container: Container name
            dir: Directory inside the container
            no_access: Make the container private
            no_listing: Create a missing bucket with a private ACL
            access: Make the container public (defaults to not no_access)

        Returns:
            OperationStatus
        """
        location = self.resolver.directory_prefix(container, dir)
        if location is None:
            return OperationStatus.new_fatal(FAIL_INVALID_PATH, f"{container}/{dir}".rstrip("/"))
        bucket, _ = location

        with operation_scope():
            return self._prepare_bucket(container, dir, bucket, no_access, no_listing, access)

    def _prepare_bucket(
        self,
        container: str,
        dir: str,
        bucket: str,
        no_access: bool,
        no_listing: bool,
        access: Optional[bool],
    ) -> OperationStatus:
        status = OperationStatus.good()

        logger.debug(
            f"Preparing S3 bucket {bucket}, dir={dir}, "
            f"no_access={no_access}, no_listing={no_listing}"
        )

        try:
            bucket_exists = self.client.bucket_exists(bucket)
        except ObjectStoreError as e:
            return self.classifier.handle_exception(
                e, status, "prepare", {"container": container, "dir": dir})

        if not bucket_exists:
            logger.warning(f"Found non-existent S3 bucket {bucket}, going to create it")
            try:
                self.client.create_bucket(
                    bucket, acl=ACL_PRIVATE if no_listing else ACL_PUBLIC_READ)
                self.client.wait_until_bucket_exists(bucket)
            except ObjectStoreError as e:
                return self.classifier.handle_exception(
                    e, status, "prepare", {"container": container, "dir": dir})

        logger.debug(f"S3 bucket {bucket} exists")

        if access is None:
            access = not no_access

        status.merge(self.publish(container, dir, access=access))
        status.merge(self.secure(container, dir, no_access=no_access))
        return status

    def secure(self, container: str, dir: str = "", no_access: bool = False, **params) -> OperationStatus:
        """Make the container private when no_access is set."""
        if not no_access:
            return OperationStatus.good()
        return self.security.secure(container)

    def publish(self, container: str, dir: str = "", access: bool = False, **params) -> OperationStatus:
        """Make the container public when access is set."""
        if not access:
            return OperationStatus.good()
        return self.security.publish(container)

    def clean(self, container: str, dir: str = "", **params) -> OperationStatus:
        """Nothing to do: directories disappear with their last file."""
        return OperationStatus.good()

    def is_secure(self, container: str) -> bool:
        return self.security.is_secure(container)

    # ========== Local copies ==========

    def get_local_copy(self, src: str) -> Optional[LocalCacheEntry]:
        """Local copy of a file, downloaded if not cached yet."""
        return self.downloads.get_local_copy(src)

    def get_local_copies(
        self,
        srcs: Iterable[str],
        concurrency: Optional[int] = None,
    ) -> Dict[str, Optional[LocalCacheEntry]]:
        """Local copies of several files, keyed by storage path."""
        with operation_scope():
            return self.downloads.get_local_copies(srcs, concurrency)

    def release_local_copies(self) -> int:
        """Remove downloaded files that were too small to keep cached."""
        release = getattr(self.local_cache, "release_deferred", None)
        return release() if release else 0

    def close(self) -> None:
        self.downloads.close()
