"""
Container registry: static mapping from logical container names to buckets.

A container path is either "BucketName" or "BucketName/dir1/dir2". In the
latter case "dir1/dir2/" is prepended to every object key of the container.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from bucketfs.storage.adapter import StorageMisconfiguredError

SEPARATOR = "/"


@dataclass(frozen=True)
class Container:
    """A configured container: its bucket and the key prefix inside it."""
    name: str
    bucket: str
    prefix: str = ""


def parse_container_path(name: str, container_path: str) -> Container:
    """
    Split a container path into bucket and prefix.

    Args:
        name: Container name
        container_path: "bucket" or "bucket/prefix..."

    Returns:
        Container whose prefix is empty or ends with exactly one separator
    """
    bucket, sep, prefix = container_path.partition(SEPARATOR)
    if not sep:
        return Container(name=name, bucket=container_path, prefix="")

    if prefix and not prefix.endswith(SEPARATOR):
        prefix += SEPARATOR  # e.g. "thumb/"

    return Container(name=name, bucket=bucket, prefix=prefix)


class ContainerRegistry:
    """Immutable lookup table of configured containers."""

    def __init__(self, container_paths: Optional[Mapping[str, str]]):
        """
        Build the registry.

        Args:
            container_paths: Mapping of container names to container paths

        Raises:
            StorageMisconfiguredError: If no container paths are configured
        """
        if not container_paths:
            raise StorageMisconfiguredError(
                "container_paths must be set for the S3 backend"
            )

        self._containers: Dict[str, Container] = {}
        for name, container_path in container_paths.items():
            if not container_path:
                continue  # Present but unconfigured
            self._containers[name] = parse_container_path(name, container_path)

    def find(self, name: str) -> Optional[Container]:
        """Get a container by name, or None if it is not configured."""
        return self._containers.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._containers

    def __len__(self) -> int:
        return len(self._containers)

    @property
    def names(self) -> List[str]:
        return list(self._containers)

    @property
    def buckets(self) -> List[str]:
        """Distinct buckets, in configuration order."""
        seen: List[str] = []
        for container in self._containers.values():
            if container.bucket not in seen:
                seen.append(container.bucket)
        return seen
