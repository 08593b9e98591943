# === NAVMAP v1 ===
# {
#   "module": "CodeListSync.io_utils",
#   "purpose": "Atomic file writes with Content-Length verification and SHA-256 fingerprints",
#   "sections": [
#     {
#       "id": "sizemismatcherror",
#       "name": "SizeMismatchError",
#       "anchor": "class-sizemismatcherror",
#       "kind": "class"
#     },
#     {
#       "id": "streamresult",
#       "name": "StreamResult",
#       "anchor": "class-streamresult",
#       "kind": "class"
#     },
#     {
#       "id": "atomic-write-stream",
#       "name": "atomic_write_stream",
#       "anchor": "function-atomic-write-stream",
#       "kind": "function"
#     },
#     {
#       "id": "atomic-write-text",
#       "name": "atomic_write_text",
#       "anchor": "function-atomic-write-text",
#       "kind": "function"
#     },
#     {
#       "id": "sha256-file",
#       "name": "sha256_file",
#       "anchor": "function-sha256-file",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Atomic file writes and content fingerprints.

**Responsibilities**
--------------------
- Stream downloaded artifacts to disk with the temporary file + fsync +
  rename pattern, so a crash never leaves a partial file at the final path.
- Hash the payload while it is written: the SHA-256 digest and byte count
  recorded in the registry always describe exactly the bytes on disk.
- Verify the byte count against ``Content-Length`` when the server sent one.
- Provide the same atomic guarantee for small text outputs (registry JSON and
  CSV exports).

**Safety**
----------
- Temporary files live in the destination directory (``.part-*.tmp``) so the
  final ``os.replace`` never crosses a filesystem boundary.
- The directory is fsynced after the rename so the rename itself is durable.
- Temporary files are removed on any failure.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Iterable, Optional

__all__ = [
    "SizeMismatchError",
    "StreamResult",
    "atomic_write_stream",
    "atomic_write_text",
    "sha256_file",
]

logger = logging.getLogger(__name__)


class SizeMismatchError(Exception):
    """Raised when downloaded bytes don't match the Content-Length header.

    Attributes:
        expected: Expected bytes (from Content-Length header).
        actual: Actual bytes received before the stream ended.
    """

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Size mismatch: expected {expected} bytes, got {actual} bytes")


@dataclass(frozen=True)
class StreamResult:
    """Outcome of :func:`atomic_write_stream`."""

    path: str
    bytes_written: int
    sha256: str


def _fsync_directory(path: str) -> None:
    dir_fd = os.open(path, os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def atomic_write_stream(
    dest_path: str,
    byte_iter: Iterable[bytes],
    *,
    expected_len: Optional[int] = None,
) -> StreamResult:
    """Write a byte stream to ``dest_path`` atomically and fingerprint it.

    Args:
        dest_path: Final location of the file. Parent directories are created
            if they don't exist.
        byte_iter: Iterable yielding chunks of bytes (e.g.
            ``httpx.Response.iter_bytes()``).
        expected_len: Expected size from Content-Length; ``None`` or ``0``
            skips the check.

    Returns:
        :class:`StreamResult` with the byte count and hex SHA-256 digest of the
        written payload.

    Raises:
        SizeMismatchError: If ``expected_len`` is given and differs from the
            bytes received. Nothing is left at ``dest_path``.
        OSError: If file I/O fails (permission denied, disk full, etc.).

    Examples:
        >>> with client.stream("GET", url) as resp:
        ...     result = atomic_write_stream("/data/eas.xlsx", resp.iter_bytes())
        >>> print(f"{result.bytes_written} bytes, sha256={result.sha256}")
    """
    dest_dir = os.path.dirname(dest_path) or "."
    os.makedirs(dest_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=dest_dir, prefix=".part-", suffix=".tmp")
    digest = hashlib.sha256()
    bytes_written = 0

    try:
        with os.fdopen(fd, "wb", buffering=0) as f:
            for chunk in byte_iter:
                if chunk:
                    f.write(chunk)
                    digest.update(chunk)
                    bytes_written += len(chunk)

            f.flush()
            os.fsync(f.fileno())

        if expected_len and bytes_written != expected_len:
            raise SizeMismatchError(expected_len, bytes_written)

        os.replace(tmp_path, dest_path)
        _fsync_directory(dest_dir)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise

    logger.debug("Wrote %d bytes to %s", bytes_written, dest_path)
    return StreamResult(path=dest_path, bytes_written=bytes_written, sha256=digest.hexdigest())


def atomic_write_text(dest_path: str, text: str, *, encoding: str = "utf-8") -> None:
    """Replace ``dest_path`` with ``text`` in one atomic rename."""
    atomic_write_stream(dest_path, [text.encode(encoding)])


def sha256_file(path: str, *, chunk_size: int = 1 << 20) -> str:
    """Hex SHA-256 digest of an existing file."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
