"""
Abstract base class for storage backends.

Defines the capability interface that the host orchestrator consumes.
Storage paths have the form '<container>/<relative path>'.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, Mapping, Optional, Union

from bucketfs.storage.status import OperationStatus


class StorageError(Exception):
    """Exception raised for storage-related errors."""
    pass


class StorageMisconfiguredError(StorageError):
    """Raised at construction when the backend configuration is unusable."""
    pass


class StorageAdapter(ABC):
    """
    Abstract base class for storage backends.

    Mutating operations return an OperationStatus, queries return None,
    False or an empty iterator on failure. Nothing raises past this
    interface once the backend has been constructed.
    """

    #: Directories only exist as long as files exist below them
    directories_are_virtual: bool = False

    @abstractmethod
    def create(
        self,
        dst: str,
        content: Union[bytes, str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> OperationStatus:
        """
        Create a file from an in-memory buffer.

        Args:
            dst: Destination storage path
            content: File contents
            headers: Optional HTTP headers (Content-Type, Cache-Control, ...)

        Returns:
            OperationStatus
        """
        pass

    @abstractmethod
    def store(
        self,
        src: str,
        dst: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> OperationStatus:
        """
        Store a local file at a storage path.

        Args:
            src: Local filesystem path
            dst: Destination storage path
            headers: Optional HTTP headers

        Returns:
            OperationStatus
        """
        pass

    @abstractmethod
    def copy(
        self,
        src: str,
        dst: str,
        headers: Optional[Mapping[str, str]] = None,
        ignore_missing_source: bool = False,
    ) -> OperationStatus:
        """
        Copy a file between two storage paths.

        Args:
            src: Source storage path
            dst: Destination storage path
            headers: Optional HTTP headers, including E-Tag / If-Modified-Since
            ignore_missing_source: Treat a missing source as success

        Returns:
            OperationStatus
        """
        pass

    @abstractmethod
    def delete(self, src: str, ignore_missing_source: bool = False) -> OperationStatus:
        """
        Delete a file.

        Args:
            src: Storage path
            ignore_missing_source: Treat a missing file as success

        Returns:
            OperationStatus
        """
        pass

    @abstractmethod
    def stat(self, src: str):
        """
        Get file information (mtime, size, etag, sha1).

        Returns:
            FileStat, or None if the file is missing or unreadable
        """
        pass

    @abstractmethod
    def directory_exists(self, container: str, dir: str = "") -> bool:
        """Check whether at least one file exists below a directory."""
        pass

    @abstractmethod
    def list_files(self, container: str, dir: str = "", top_only: bool = False) -> Iterator[str]:
        """
        List files below a directory.

        Returns:
            Lazy iterator of paths relative to the directory
        """
        pass

    @abstractmethod
    def list_directories(self, container: str, dir: str = "", top_only: bool = False) -> Iterator[str]:
        """
        List subdirectories of a directory.

        Returns:
            Lazy iterator of directory paths relative to the directory
        """
        pass

    @abstractmethod
    def prepare(self, container: str, dir: str = "", **params) -> OperationStatus:
        """Make a container usable for storing files."""
        pass

    @abstractmethod
    def clean(self, container: str, dir: str = "", **params) -> OperationStatus:
        """Remove empty directory structure below a directory."""
        pass

    @abstractmethod
    def get_local_copy(self, src: str):
        """
        Get a local copy of a file.

        Returns:
            LocalCacheEntry, or None if the file could not be fetched
        """
        pass

    @abstractmethod
    def get_local_copies(self, srcs: Iterable[str], concurrency: Optional[int] = None) -> Dict[str, object]:
        """Get local copies of several files, keyed by storage path."""
        pass

    @abstractmethod
    def get_http_url(self, src: str) -> Optional[str]:
        """Get a URL from which the file can be fetched directly."""
        pass
