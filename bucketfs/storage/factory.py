"""
Storage factory for creating the storage adapter instance.

Provides singleton access to the S3 backend based on configuration.
"""

from functools import lru_cache

from bucketfs.common.logging_config import setup_logging
from bucketfs.config.settings import get_settings
from bucketfs.storage.adapter import StorageAdapter
from bucketfs.storage.s3 import S3Storage


@lru_cache()
def get_storage_adapter() -> StorageAdapter:
    """
    Get the configured storage adapter instance.

    Logging is configured from the same settings on first use.

    Returns:
        S3Storage built from application settings

    Raises:
        StorageMisconfiguredError: If no container paths are configured
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    return S3Storage.from_settings(settings)


def reset_storage_adapter() -> None:
    """Reset the cached storage adapter (useful for testing)."""
    get_storage_adapter.cache_clear()
