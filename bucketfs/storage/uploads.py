"""
Upload sources: in-memory buffers and local files.

Both kinds feed the same upload procedure; each knows how to hash itself,
guess its content type and open an upload body.
"""

import hashlib
import mimetypes
import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, Optional, Union

import magic

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# libmagic answers that say nothing beyond "some text" or "some bytes"
GENERIC_CONTENT_TYPES = frozenset({"text/plain", DEFAULT_CONTENT_TYPE, "inode/x-empty"})

SHA1_BASE36_LENGTH = 31
BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
HASH_CHUNK_SIZE = 1024 * 1024


def sha1_base36(hexdigest: str) -> str:
    """Convert a hex SHA-1 digest to base 36, zero-padded to 31 characters."""
    number = int(hexdigest, 16)
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits)).rjust(SHA1_BASE36_LENGTH, "0")


def guess_type_from_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    content_type, _ = mimetypes.guess_type(name)
    return content_type


def sniff_content_type(data: bytes) -> Optional[str]:
    """Detect the MIME type of a buffer with libmagic."""
    if not data:
        return None
    return magic.from_buffer(data, mime=True) or None


@dataclass(frozen=True)
class BytesSource:
    """Upload body held in memory."""
    data: bytes

    @classmethod
    def from_content(cls, content: Union[bytes, str]) -> "BytesSource":
        if isinstance(content, str):
            content = content.encode("utf-8")
        return cls(bytes(content))

    def sha1_base36(self) -> str:
        return sha1_base36(hashlib.sha1(self.data).hexdigest())

    def guess_content_type(self, dst_path: Optional[str] = None) -> str:
        # Named types win over generic answers (e.g. .css, .json)
        sniffed = sniff_content_type(self.data)
        if sniffed and sniffed not in GENERIC_CONTENT_TYPES:
            return sniffed
        return guess_type_from_name(dst_path) or sniffed or DEFAULT_CONTENT_TYPE

    @contextmanager
    def open_body(self) -> Iterator[bytes]:
        yield self.data

    def __repr__(self) -> str:
        return f"BytesSource(<{len(self.data)} bytes>)"


@dataclass(frozen=True)
class FileSource:
    """Upload body read from a local file."""
    path: Union[str, os.PathLike]

    def sha1_base36(self) -> str:
        digest = hashlib.sha1()
        with open(self.path, "rb") as f:
            for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
        return sha1_base36(digest.hexdigest())

    def guess_content_type(self, dst_path: Optional[str] = None) -> str:
        return (
            guess_type_from_name(Path(self.path).name)
            or guess_type_from_name(dst_path)
            or DEFAULT_CONTENT_TYPE
        )

    @contextmanager
    def open_body(self) -> Iterator[IO[bytes]]:
        with open(self.path, "rb") as f:
            yield f


UploadSource = Union[BytesSource, FileSource]
