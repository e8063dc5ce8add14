"""
Local copies of remote objects, served from the local download cache.

On a cache miss the object is downloaded through a presigned GET URL into
the cache. Download problems are never raised: they are collected by a
scoped wrapper around the single download, logged, and reported to the
caller as "no local copy".
"""

import contextvars
import logging
import os
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from bucketfs.common.logging_config import PerformanceTracker
from bucketfs.common.metrics import download_duration_seconds, local_cache_lookups_total
from bucketfs.common.resilience import download_retrying
from bucketfs.storage.local_cache import LocalCacheEntry, LocalCacheStore
from bucketfs.storage.paths import PathResolver

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024
MAX_PARALLEL_DOWNLOADS = 16


@dataclass
class DownloadResult:
    """Outcome of a single download, with the diagnostics it produced."""
    ok: bool
    diagnostics: List[str] = field(default_factory=list)
    duration_ms: float = 0.0


class LocalDownloadCoordinator:
    """Fetches objects into the local cache and serves cached copies."""

    def __init__(
        self,
        cache: LocalCacheStore,
        resolver: PathResolver,
        presign: Callable[[str], Optional[str]],
        http_client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
        retries: int = 3,
    ):
        """
        Initialize the coordinator.

        Args:
            cache: Local cache store
            resolver: Storage path resolver
            presign: Returns a presigned GET URL for a storage path (or None)
            http_client: httpx client used for downloads (created if None)
            timeout: Download timeout in seconds
            retries: Attempts per download on transport errors
        """
        self.cache = cache
        self.resolver = resolver
        self.presign = presign
        self.retries = retries
        self.http = http_client or httpx.Client(timeout=timeout, follow_redirects=True)

    def get_local_copy(self, src: str) -> Optional[LocalCacheEntry]:
        """
        Get a local copy of an object, downloading it on a cache miss.

        Args:
            src: Storage path

        Returns:
            LocalCacheEntry, or None if the object could not be fetched
        """
        entry = self.cache.get(src)

        if entry.exists() and entry.size() > 0:
            logger.debug(f"Found {src} in local cache: {entry.path}")
            local_cache_lookups_total.labels(result="hit").inc()
            return entry

        url = self.presign(src)
        if not url:
            local_cache_lookups_total.labels(result="failed").inc()
            return None  # Invalid path or the object store refused

        local_cache_lookups_total.labels(result="miss").inc()
        logger.debug(f"Downloading presigned S3 URL {url} to {entry.path}")

        result = self._download(url, entry.path)
        for message in result.diagnostics:
            logger.error(f"Download of {src} from S3: {message}")

        if not result.ok:
            local_cache_lookups_total.labels(result="failed").inc()
            return None

        # Entries not worth keeping are removed later
        self.cache.post_download(entry)
        download_duration_seconds.observe(result.duration_ms / 1000)
        return entry

    def get_local_copies(
        self,
        srcs: Iterable[str],
        concurrency: Optional[int] = None,
    ) -> Dict[str, Optional[LocalCacheEntry]]:
        """
        Get local copies of several objects.

        Paths are processed in chunks of `concurrency`; the paths of a chunk
        are fetched in parallel. A path that cannot be fetched maps to None
        without affecting the others.

        Args:
            srcs: Storage paths
            concurrency: Chunk size (defaults to all paths at once)

        Returns:
            Mapping of every input path to its local copy or None
        """
        paths = list(dict.fromkeys(srcs))
        results: Dict[str, Optional[LocalCacheEntry]] = {}
        if not paths:
            return results

        chunk_size = max(1, concurrency or len(paths))
        workers = min(chunk_size, MAX_PARALLEL_DOWNLOADS)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="s3-download") as pool:
            for start in range(0, len(paths), chunk_size):
                batch = paths[start:start + chunk_size]
                # Workers log with the caller's operation ID
                futures = {
                    src: pool.submit(contextvars.copy_context().run, self._get_local_copy_logged, src)
                    for src in batch
                }
                for src, future in futures.items():
                    try:
                        results[src] = future.result()
                    except Exception:
                        logger.exception(f"Local copy of {src} failed")
                        results[src] = None

        return results

    def _get_local_copy_logged(self, src: str) -> Optional[LocalCacheEntry]:
        address = self.resolver.resolve_storage_path(src)
        if address is None:
            return None

        entry = self.get_local_copy(src)
        if entry is not None:
            logger.debug(
                f"{address.key} from S3 bucket {address.bucket} is stored locally: {entry.path}"
            )
        else:
            logger.error(
                f"{address.key} from S3 bucket {address.bucket} couldn't be copied to local cache"
            )
        return entry

    def _download(self, url: str, target: Path) -> DownloadResult:
        """
        Download a URL into a file, capturing every failure.

        The body goes to a temporary sibling first, so a failed download
        never leaves a truncated file at the target path.
        """
        result = DownloadResult(ok=False)
        partial = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with PerformanceTracker(
                f"downloading {target.name} from S3", logger, target=str(target),
            ) as tracker:
                download_retrying(self.retries)(self._fetch, url, partial)
                os.replace(partial, target)
            result.ok = True
            result.duration_ms = tracker.duration_ms or 0.0
        except httpx.HTTPStatusError as e:
            result.diagnostics.append(f"HTTP {e.response.status_code} for presigned URL")
        except (httpx.HTTPError, OSError) as e:
            result.diagnostics.append(f"{type(e).__name__}: {e}")
        finally:
            if partial.exists():
                partial.unlink()

        return result

    def _fetch(self, url: str, destination: Path) -> None:
        with self.http.stream("GET", url) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)

    def close(self) -> None:
        self.http.close()
