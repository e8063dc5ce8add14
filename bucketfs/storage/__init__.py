"""
Storage backend mapping hierarchical storage paths onto S3 buckets.
"""

from bucketfs.storage.adapter import StorageAdapter, StorageError, StorageMisconfiguredError
from bucketfs.storage.client import Boto3ObjectStoreClient, ObjectStoreClient, ObjectStoreError
from bucketfs.storage.local_cache import DirectoryLocalCache, LocalCacheEntry
from bucketfs.storage.operations import FileStat
from bucketfs.storage.s3 import S3Storage
from bucketfs.storage.status import OperationStatus, StatusMessage
from bucketfs.storage.factory import get_storage_adapter, reset_storage_adapter

__all__ = [
    "StorageAdapter",
    "StorageError",
    "StorageMisconfiguredError",
    "Boto3ObjectStoreClient",
    "ObjectStoreClient",
    "ObjectStoreError",
    "DirectoryLocalCache",
    "LocalCacheEntry",
    "FileStat",
    "S3Storage",
    "OperationStatus",
    "StatusMessage",
    "get_storage_adapter",
    "reset_storage_adapter",
]
