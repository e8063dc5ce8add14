"""
Directory emulation over prefix/delimiter listings.

The object store has no directories: a directory exists as long as at
least one key starts with its prefix. Listings are lazy generators over
the client's pagination, so callers may stop early without fetching
further pages.
"""

import logging
from typing import Iterable, Iterator, List

from bucketfs.storage.client import ObjectStoreClient, ObjectStoreError
from bucketfs.storage.containers import SEPARATOR
from bucketfs.storage.errors import ErrorClassifier
from bucketfs.storage.paths import PathResolver

logger = logging.getLogger(__name__)


def iter_subdirectories(paths: Iterable[str]) -> Iterator[str]:
    """
    Derive every directory containing at least one of the given files.

    Paths must arrive in lexicographic order (as the object store lists
    them): all paths below a directory are then contiguous, so it is enough
    to remember the directory chain of the previous path. Each directory is
    emitted once, parents before children.
    """
    previous: List[str] = []
    for path in paths:
        parts = path.split(SEPARATOR)[:-1]
        if parts == previous:
            continue

        common = 0
        for mine, theirs in zip(parts, previous):
            if mine != theirs:
                break
            common += 1

        for depth in range(common + 1, len(parts) + 1):
            yield SEPARATOR.join(parts[:depth])
        previous = parts


class ListingEmulator:
    """Flat and hierarchical listings of a container directory."""

    def __init__(
        self,
        resolver: PathResolver,
        client: ObjectStoreClient,
        classifier: ErrorClassifier,
    ):
        self.resolver = resolver
        self.client = client
        self.classifier = classifier

    def directory_exists(self, container: str, dir: str = "") -> bool:
        """Whether at least one file exists below the directory."""
        location = self.resolver.directory_prefix(container, dir)
        if location is None:
            return False
        bucket, prefix = location

        logger.debug(f"Checking existence of directory {prefix} in S3 bucket {bucket}")

        try:
            for page in self.client.iter_list_pages(bucket, prefix, max_keys=1):
                if page.keys:
                    return True
        except ObjectStoreError as e:
            self.classifier.handle_exception(
                e, None, "directory_exists", {"container": container, "dir": dir})
        return False

    def list_files(self, container: str, dir: str = "", top_only: bool = False) -> Iterator[str]:
        """
        List files below a directory.

        Args:
            container: Container name
            dir: Directory relative to the container
            top_only: Only list files directly in the directory

        Yields:
            File paths relative to the directory
        """
        location = self.resolver.directory_prefix(container, dir)
        if location is None:
            return
        bucket, prefix = location

        logger.debug(
            f"Listing files (top_only={top_only}) of directory {prefix} in S3 bucket {bucket}"
        )

        delimiter = SEPARATOR if top_only else ""
        try:
            for page in self.client.iter_list_pages(bucket, prefix, delimiter):
                for key in page.keys:
                    name = key[len(prefix):]
                    if name:  # Skip the "directory" placeholder object itself
                        yield name
        except ObjectStoreError as e:
            self.classifier.handle_exception(
                e, None, "list_files", {"container": container, "dir": dir})

    def list_directories(self, container: str, dir: str = "", top_only: bool = False) -> Iterator[str]:
        """
        List subdirectories of a directory.

        Args:
            container: Container name
            dir: Directory relative to the container
            top_only: Only list immediate subdirectories

        Yields:
            Directory paths relative to the directory, without trailing separator
        """
        if not top_only:
            yield from iter_subdirectories(self.list_files(container, dir))
            return

        location = self.resolver.directory_prefix(container, dir)
        if location is None:
            return
        bucket, prefix = location

        logger.debug(f"Listing directories of {prefix} in S3 bucket {bucket}")

        try:
            for page in self.client.iter_list_pages(bucket, prefix, SEPARATOR):
                for common_prefix in page.common_prefixes:
                    # Common prefixes always end with the delimiter
                    name = common_prefix[len(prefix):-len(SEPARATOR)]
                    if name:
                        yield name
        except ObjectStoreError as e:
            self.classifier.handle_exception(
                e, None, "list_directories", {"container": container, "dir": dir})
