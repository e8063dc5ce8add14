"""
Path resolution: storage paths to physical (bucket, key) addresses.

Pure functions of the container registry and their input; no remote calls.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from bucketfs.storage.containers import SEPARATOR, ContainerRegistry

STORE_SCHEME = "store://"

# Presence of this object at the top of a container's prefix makes the
# container private (ACL=private for every object stored or copied into it).
RESTRICT_FILE = ".htsecure"

# Maximum length of an S3 object name, in bytes.
# https://docs.aws.amazon.com/AmazonS3/latest/userguide/object-keys.html
MAX_OBJECT_NAME_LENGTH = 1024


@dataclass(frozen=True)
class PhysicalAddress:
    """Location of an object in the remote store."""
    bucket: str
    key: str
    container: str


def split_storage_path(path: str) -> Optional[Tuple[str, str]]:
    """
    Split a storage path into container name and relative path.

    Accepts "container/rel/path" and "store://backend/container/rel/path".

    Returns:
        (container, relative path), or None if the path is malformed
    """
    if not path:
        return None

    if path.startswith(STORE_SCHEME):
        _, sep, path = path[len(STORE_SCHEME):].partition(SEPARATOR)
        if not sep:
            return None

    if "\\" in path or "\0" in path:
        return None

    container, _, relative = path.partition(SEPARATOR)
    if not container:
        return None

    if relative:
        for segment in relative.rstrip(SEPARATOR).split(SEPARATOR):
            if segment in ("", ".", ".."):
                return None

    return container, relative


def canonical_storage_path(path: str) -> str:
    """
    Spelling of a storage path shared by all of its aliases.

    "store://backend/c/x" and "c/x" both become "c/x". Malformed paths are
    returned unchanged.
    """
    parts = split_storage_path(path)
    if parts is None:
        return path
    container, relative = parts
    return f"{container}{SEPARATOR}{relative}" if relative else container


def normalize_dir(dir: str) -> str:
    """Add a trailing separator to a non-empty directory path."""
    if dir and not dir.endswith(SEPARATOR):
        dir += SEPARATOR
    return dir


class PathResolver:
    """Turns (container, relative path) pairs into physical addresses."""

    def __init__(self, registry: ContainerRegistry):
        self.registry = registry

    def resolve(self, container_name: str, relative_path: str) -> Optional[PhysicalAddress]:
        """
        Resolve a file inside a container.

        Returns:
            PhysicalAddress, or None for an unknown container, an empty
            relative path or a key longer than MAX_OBJECT_NAME_LENGTH bytes
        """
        container = self.registry.find(container_name)
        if container is None or not relative_path:
            return None

        key = container.prefix + relative_path
        if len(key.encode("utf-8")) > MAX_OBJECT_NAME_LENGTH:
            return None

        return PhysicalAddress(bucket=container.bucket, key=key, container=container_name)

    def resolve_storage_path(self, path: str) -> Optional[PhysicalAddress]:
        """Resolve a full storage path ('container/rel/path')."""
        parts = split_storage_path(path)
        if parts is None:
            return None
        return self.resolve(*parts)

    def restrict_file_address(self, container_name: str) -> Optional[PhysicalAddress]:
        """Address of the marker object that makes a container private."""
        container = self.registry.find(container_name)
        if container is None:
            return None
        return PhysicalAddress(
            bucket=container.bucket,
            key=container.prefix + RESTRICT_FILE,
            container=container_name,
        )

    def directory_prefix(self, container_name: str, dir: str) -> Optional[Tuple[str, str]]:
        """
        Bucket and key prefix of a directory inside a container.

        The prefix ends with a separator unless it is empty, so that listings
        return the directory's contents rather than the directory itself.
        """
        container = self.registry.find(container_name)
        if container is None:
            return None
        return container.bucket, normalize_dir(container.prefix + dir)

    def bucket_for_storage_path(self, path: str) -> Optional[str]:
        """Bucket of the container a storage path (file or directory) belongs to."""
        parts = split_storage_path(path)
        if parts is None:
            return None
        container = self.registry.find(parts[0])
        return container.bucket if container else None
