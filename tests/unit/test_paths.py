"""
Unit tests for storage path resolution.
"""

import pytest

from bucketfs.storage.containers import ContainerRegistry
from bucketfs.storage.paths import (
    MAX_OBJECT_NAME_LENGTH,
    PathResolver,
    PhysicalAddress,
    canonical_storage_path,
    normalize_dir,
    split_storage_path,
)


@pytest.fixture
def resolver():
    return PathResolver(ContainerRegistry({
        "local-public": "wiki-bucket/a/b",
        "local-temp": "temp-bucket",
    }))


class TestSplitStoragePath:
    """Test storage path parsing."""

    def test_plain_path(self):
        assert split_storage_path("local-public/x/y.png") == ("local-public", "x/y.png")

    def test_container_only(self):
        assert split_storage_path("local-public") == ("local-public", "")

    def test_store_scheme(self):
        """The store:// scheme carries the backend name, which is dropped."""
        assert split_storage_path("store://s3-backend/local-public/x.png") == ("local-public", "x.png")

    def test_store_scheme_without_container(self):
        assert split_storage_path("store://s3-backend") is None

    @pytest.mark.parametrize("path", [
        "",
        "/x.png",
        "local-public/../x.png",
        "local-public/a/./x.png",
        "local-public/a//x.png",
        "local-public/a\\x.png",
    ])
    def test_malformed_paths(self, path):
        assert split_storage_path(path) is None


class TestCanonicalStoragePath:
    """Test the spelling shared by path aliases."""

    @pytest.mark.parametrize("path,expected", [
        ("store://s3-backend/local-public/a/b.png", "local-public/a/b.png"),
        ("local-public/a/b.png", "local-public/a/b.png"),
        ("store://s3-backend/local-public", "local-public"),
        ("local-public/../x", "local-public/../x"),
    ])
    def test_canonical(self, path, expected):
        assert canonical_storage_path(path) == expected


class TestResolve:
    """Test (container, relative path) resolution."""

    def test_prefix_is_prepended(self, resolver):
        """Container 'bucket/a/b' maps path p to key 'a/b/p'."""
        address = resolver.resolve("local-public", "p.txt")
        assert address == PhysicalAddress("wiki-bucket", "a/b/p.txt", "local-public")

    def test_bucket_only_container(self, resolver):
        address = resolver.resolve("local-temp", "x/y.png")
        assert address.bucket == "temp-bucket"
        assert address.key == "x/y.png"

    def test_unknown_container(self, resolver):
        assert resolver.resolve("local-thumb", "p.txt") is None

    def test_empty_relative_path(self, resolver):
        assert resolver.resolve("local-public", "") is None

    def test_key_at_limit(self, resolver):
        """A key of exactly 1024 bytes is accepted."""
        relative = "x" * (MAX_OBJECT_NAME_LENGTH - len("a/b/"))
        address = resolver.resolve("local-public", relative)
        assert address is not None
        assert len(address.key) == MAX_OBJECT_NAME_LENGTH

    def test_key_over_limit(self, resolver):
        """The prefix counts toward the limit."""
        relative = "x" * (MAX_OBJECT_NAME_LENGTH - len("a/b/") + 1)
        assert resolver.resolve("local-public", relative) is None

    def test_limit_counts_bytes(self, resolver):
        """Multi-byte characters count by their UTF-8 length."""
        relative = "é" * 600  # 1200 bytes
        assert resolver.resolve("local-temp", relative) is None

    def test_resolve_storage_path(self, resolver):
        address = resolver.resolve_storage_path("local-public/c/d.png")
        assert address.key == "a/b/c/d.png"
        assert address.container == "local-public"

    def test_resolve_storage_path_invalid(self, resolver):
        assert resolver.resolve_storage_path("local-public/../d.png") is None
        assert resolver.resolve_storage_path("nowhere/d.png") is None


class TestCompanionAddresses:
    """Test marker and directory addresses."""

    def test_restrict_file_address(self, resolver):
        address = resolver.restrict_file_address("local-public")
        assert address.bucket == "wiki-bucket"
        assert address.key == "a/b/.htsecure"

    def test_restrict_file_address_bucket_only(self, resolver):
        assert resolver.restrict_file_address("local-temp").key == ".htsecure"

    def test_restrict_file_address_unknown(self, resolver):
        assert resolver.restrict_file_address("nowhere") is None

    def test_directory_prefix(self, resolver):
        assert resolver.directory_prefix("local-public", "d") == ("wiki-bucket", "a/b/d/")
        assert resolver.directory_prefix("local-public", "d/") == ("wiki-bucket", "a/b/d/")
        assert resolver.directory_prefix("local-temp", "") == ("temp-bucket", "")

    def test_bucket_for_storage_path(self, resolver):
        assert resolver.bucket_for_storage_path("local-public") == "wiki-bucket"
        assert resolver.bucket_for_storage_path("local-temp/x") == "temp-bucket"
        assert resolver.bucket_for_storage_path("nowhere/x") is None

    def test_normalize_dir(self):
        assert normalize_dir("") == ""
        assert normalize_dir("a") == "a/"
        assert normalize_dir("a/") == "a/"
