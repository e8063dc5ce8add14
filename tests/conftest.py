# Test configuration

import pytest
import os
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional
from urllib.parse import urlsplit, unquote

import httpx

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from bucketfs.storage.client import ListPage, ObjectHead, ObjectStoreError  # noqa: E402
from bucketfs.storage.containers import ContainerRegistry  # noqa: E402
from bucketfs.storage.local_cache import DirectoryLocalCache  # noqa: E402
from bucketfs.storage.paths import PathResolver  # noqa: E402
from bucketfs.storage.s3 import S3Storage  # noqa: E402


CONTAINER_PATHS = {
    "local-public": "wiki-bucket/public",
    "local-thumb": "wiki-bucket/thumb/",
    "local-deleted": "wiki-bucket/deleted",
    "local-temp": "temp-bucket",
    "local-archive": "archive-bucket/old/files",
}


class FakeObject:
    def __init__(self, data: bytes, acl=None, metadata=None, headers=None, encryption=None):
        self.data = data
        self.acl = acl
        self.metadata = dict(metadata or {})
        self.headers = dict(headers or {})
        self.encryption = encryption
        self.last_modified = datetime.now(timezone.utc)


class FakeObjectStore:
    """
    In-memory ObjectStoreClient.

    Deleting a missing key raises NoSuchKey, as some S3-compatible stores do.
    """

    def __init__(self, buckets=("wiki-bucket", "archive-bucket"), page_size: int = 2):
        self.buckets: Dict[str, Dict[str, FakeObject]] = {b: {} for b in buckets}
        self.bucket_acls: Dict[str, Optional[str]] = {}
        self.page_size = page_size
        self.calls: List[tuple] = []
        self.pages_fetched = 0
        self.failures: Dict[str, ObjectStoreError] = {}

    # ---- test helpers ----

    def fail(self, method: str, code: str, message: str = "Simulated failure"):
        self.failures[method] = ObjectStoreError(code, message, 500)

    def add(self, bucket: str, key: str, data: bytes = b"data", **kwargs):
        self.buckets.setdefault(bucket, {})[key] = FakeObject(data, **kwargs)

    def get(self, bucket: str, key: str) -> Optional[FakeObject]:
        return self.buckets.get(bucket, {}).get(key)

    def calls_to(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    def _enter(self, method: str, *args):
        self.calls.append((method,) + args)
        if method in self.failures:
            raise self.failures[method]

    def _bucket(self, bucket: str) -> Dict[str, FakeObject]:
        if bucket not in self.buckets:
            raise ObjectStoreError("NoSuchBucket", "The specified bucket does not exist", 404)
        return self.buckets[bucket]

    # ---- ObjectStoreClient ----

    def bucket_exists(self, bucket):
        self._enter("bucket_exists", bucket)
        return bucket in self.buckets

    def create_bucket(self, bucket, acl=None):
        self._enter("create_bucket", bucket, acl)
        self.buckets.setdefault(bucket, {})
        self.bucket_acls[bucket] = acl

    def wait_until_bucket_exists(self, bucket):
        self._enter("wait_until_bucket_exists", bucket)

    def put_object(self, bucket, key, body, acl=None, metadata=None, headers=None,
                   server_side_encryption=None):
        self._enter("put_object", bucket, key)
        objects = self._bucket(bucket)
        data = body if isinstance(body, bytes) else body.read()
        objects[key] = FakeObject(data, acl, metadata, headers, server_side_encryption)

    def head_object(self, bucket, key):
        self._enter("head_object", bucket, key)
        obj = self.buckets.get(bucket, {}).get(key)
        if obj is None:
            raise ObjectStoreError("NotFound", "Not Found", 404)
        return ObjectHead(
            last_modified=obj.last_modified,
            size=len(obj.data),
            etag=f'"{hash(obj.data) & 0xffffffff:08x}"',
            metadata=dict(obj.metadata),
        )

    def object_exists(self, bucket, key):
        self._enter("object_exists", bucket, key)
        return key in self.buckets.get(bucket, {})

    def delete_object(self, bucket, key):
        self._enter("delete_object", bucket, key)
        objects = self._bucket(bucket)
        if key not in objects:
            raise ObjectStoreError("NoSuchKey", "The specified key does not exist.", 404)
        del objects[key]

    def copy_object(self, src_bucket, src_key, dst_bucket, dst_key, acl=None, headers=None,
                    if_match=None, if_modified_since=None, server_side_encryption=None,
                    metadata_directive="COPY"):
        self._enter("copy_object", src_bucket, src_key, dst_bucket, dst_key)
        source = self._bucket(src_bucket)
        destination = self._bucket(dst_bucket)
        if src_key not in source:
            raise ObjectStoreError("NoSuchKey", "The specified key does not exist.", 404)
        original = source[src_key]
        destination[dst_key] = FakeObject(
            original.data, acl, original.metadata, headers, server_side_encryption)

    def iter_list_pages(self, bucket, prefix, delimiter="", max_keys=None):
        self._enter("iter_list_pages", bucket, prefix, delimiter, max_keys)
        objects = self._bucket(bucket)

        entries = []  # (name, is_prefix)
        seen_prefixes = set()
        for key in sorted(objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter and delimiter in rest:
                common = prefix + rest[:rest.index(delimiter) + len(delimiter)]
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    entries.append((common, True))
            else:
                entries.append((key, False))

        if max_keys:
            entries = entries[:max_keys]

        for start in range(0, len(entries), self.page_size):
            self.pages_fetched += 1
            chunk = entries[start:start + self.page_size]
            yield ListPage(
                keys=[name for name, is_prefix in chunk if not is_prefix],
                common_prefixes=[name for name, is_prefix in chunk if is_prefix],
            )

    def presigned_get_url(self, bucket, key, expires_in):
        self._enter("presigned_get_url", bucket, key, expires_in)
        return f"https://{bucket}.s3.test/{key}?X-Amz-Expires={expires_in}"

    # ---- HTTP side of presigned URLs ----

    def http_handler(self, request: httpx.Request) -> httpx.Response:
        url = urlsplit(str(request.url))
        bucket = url.hostname.split(".", 1)[0]
        key = unquote(url.path.lstrip("/"))
        obj = self.buckets.get(bucket, {}).get(key)
        if obj is None:
            return httpx.Response(404, content=b"<Error><Code>NoSuchKey</Code></Error>")
        return httpx.Response(200, content=obj.data)


@pytest.fixture
def fake_store():
    """In-memory object store with the wiki and archive buckets."""
    return FakeObjectStore()


@pytest.fixture
def container_paths():
    """Containers spread over three buckets, one of them missing."""
    return dict(CONTAINER_PATHS)


@pytest.fixture
def resolver(container_paths):
    """Path resolver over the test containers."""
    return PathResolver(ContainerRegistry(container_paths))


@pytest.fixture
def local_cache(tmp_path):
    """Local download cache in a temporary directory."""
    return DirectoryLocalCache(str(tmp_path / "cache"))


@pytest.fixture
def http_client(fake_store):
    """httpx client serving presigned URLs from the fake store."""
    client = httpx.Client(transport=httpx.MockTransport(fake_store.http_handler))
    yield client
    client.close()


@pytest.fixture
def storage(fake_store, container_paths, local_cache, http_client):
    """S3 backend wired to the fake store."""
    return S3Storage(
        container_paths=container_paths,
        name="test-s3",
        client=fake_store,
        local_cache=local_cache,
        http_client=http_client,
        download_retries=1,
    )


@pytest.fixture
def test_settings(tmp_path):
    """Override settings for testing"""
    from bucketfs.config.settings import Settings
    return Settings(
        backend_name="test-s3",
        container_paths=CONTAINER_PATHS,
        aws_region="eu-west-1",
        local_cache_path=str(tmp_path / "settings-cache"),
    )
